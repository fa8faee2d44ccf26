"""Structured, stage-labelled logging for the build pipeline."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Literal, TextIO

Level = Literal["info", "warning", "error"]

BOLD_WHITE = "\033[1;37m"
GREEN = "\033[0;32m"
YELLOW = "\033[0;33m"
RED = "\033[0;31m"
RESET = "\033[0m"

_LEVEL_COLORS: dict[str, str] = {"info": GREEN, "warning": YELLOW, "error": RED}


@dataclass(slots=True)
class StructuredLogger:
    """Keeps every record and echoes it as ``[stage] message``.

    ``stream`` defaults to whatever ``sys.stdout`` is at call time. ``color``
    set to ``None`` enables ANSI colors only when the stream is a TTY.
    """

    records: list[dict[str, Any]] = field(default_factory=list)
    stream: TextIO | None = None
    color: bool | None = None
    echo: bool = True

    def log(
        self,
        *,
        stage: str,
        message: str,
        level: Level = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "stage": stage,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        if self.echo:
            self._emit(stage=stage, message=message, level=level)

    def info(self, stage: str, message: str, **extra: Any) -> None:
        self.log(stage=stage, message=message, level="info", extra=extra or None)

    def warning(self, stage: str, message: str, **extra: Any) -> None:
        self.log(stage=stage, message=message, level="warning", extra=extra or None)

    def error(self, stage: str, message: str, **extra: Any) -> None:
        self.log(stage=stage, message=message, level="error", extra=extra or None)

    def records_for_stage(self, stage: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("stage") == stage]

    def messages(self, *, level: Level | None = None) -> list[str]:
        return [
            record["message"]
            for record in self.records
            if level is None or record["level"] == level
        ]

    def _emit(self, *, stage: str, message: str, level: str) -> None:
        stream = self.stream if self.stream is not None else sys.stdout
        use_color = self.color if self.color is not None else stream.isatty()
        if use_color:
            line = f"{BOLD_WHITE}[{stage}] {_LEVEL_COLORS[level]}{message}{RESET}"
        else:
            line = f"[{stage}] {message}"
        print(line, file=stream, flush=True)
