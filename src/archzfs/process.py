"""Thin wrappers around ``subprocess.run`` for external build tools."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path

from archzfs.errors import ArchzfsError

ErrorFactory = Callable[..., ArchzfsError]

STDERR_LIMIT = 2000


def run_command(
    argv: Sequence[str | Path],
    *,
    error: ErrorFactory,
    message: str,
    operation: str,
    hint: str | None = None,
    cwd: Path | None = None,
    input: str | None = None,
    timeout: float | None = None,
    capture: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run *argv* and raise *error* on a non-zero exit, timeout or missing binary.

    ``input`` is fed to stdin and is never copied into the error context.
    With ``capture=False`` the child writes straight to the terminal.
    """
    command = [str(arg) for arg in argv]
    context: dict[str, str] = {"operation": operation, "command": " ".join(command)}
    if cwd is not None:
        context["cwd"] = str(cwd)
    try:
        completed = subprocess.run(
            command,
            cwd=str(cwd) if cwd is not None else None,
            input=input,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise error(
            message,
            hint=hint,
            context={**context, "timeout": f"{timeout}s"},
        ) from exc
    except FileNotFoundError as exc:
        raise error(
            message,
            hint=f"`{command[0]}` was not found in PATH.",
            context=context,
        ) from exc

    if completed.returncode != 0:
        raise error(
            message,
            hint=hint,
            context={
                **context,
                "returncode": str(completed.returncode),
                "stderr": _tail(completed.stderr),
            },
        )
    return completed


def probe_command(argv: Sequence[str | Path], *, cwd: Path | None = None) -> bool:
    """Return True when a query command such as ``pacman -Q`` exits 0."""
    try:
        completed = subprocess.run(
            [str(arg) for arg in argv],
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        return False
    return completed.returncode == 0


def _tail(stderr: str | None) -> str:
    if not stderr:
        return ""
    return stderr.strip()[-STDERR_LIMIT:]
