"""Literal text patching of externally owned configuration files.

Profile files (``profiledef.sh``, boot loader entries, package lists) have no
stable parser, so they are edited through typed :class:`PatchOperation`
values. Every ``old`` value is escaped before it reaches :mod:`re` and every
``new`` value is inserted verbatim, so neither is ever read as pattern or
backreference syntax.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from archzfs.errors import PatchError, PatchTargetMissingError

PatchAnchor = Literal["line", "substring", "insert_after"]


def escape_for_literal_match(value: str) -> str:
    """Escape *value* so that, used as a pattern, it matches only itself."""
    if not value:
        raise PatchError("No string given to escape.")
    return re.escape(value)


@dataclass(frozen=True, slots=True)
class PatchOperation:
    """Replace ``old`` with ``new`` inside ``path``.

    ``line``
        Every line exactly equal to ``old`` becomes ``new``.
    ``substring``
        Every occurrence of ``old`` within any line becomes ``new``.
    ``insert_after``
        ``new`` (one or more lines) is inserted after the first line that
        contains ``old``, indented like that line.
    """

    path: Path
    old: str
    new: str
    anchor: PatchAnchor = "line"

    def pattern(self) -> re.Pattern[str]:
        escaped = escape_for_literal_match(self.old)
        if self.anchor == "line":
            return re.compile(rf"^{escaped}$", re.MULTILINE)
        if self.anchor == "substring":
            return re.compile(escaped)
        return re.compile(rf"^(?P<indent>[ \t]*).*{escaped}.*$", re.MULTILINE)


def apply_patch(operation: PatchOperation) -> int:
    """Apply *operation* in place and return the number of edits made."""
    path = ensure_patch_target(operation.path)
    text = path.read_text(encoding="utf-8")
    pattern = operation.pattern()

    if operation.anchor == "insert_after":
        match = pattern.search(text)
        if match is None:
            return 0
        indent = match.group("indent")
        block = "".join(f"\n{indent}{line}" for line in operation.new.splitlines())
        patched = text[: match.end()] + block + text[match.end() :]
        count = 1
    else:
        patched, count = pattern.subn(lambda _: operation.new, text)

    if count:
        path.write_text(patched, encoding="utf-8")
    return count


def append_text(path: Path, text: str) -> None:
    target = ensure_patch_target(path)
    with target.open("a", encoding="utf-8") as handle:
        handle.write(text)


def ensure_patch_target(path: Path) -> Path:
    target = Path(path)
    if not target.is_file() or not os.access(target, os.W_OK):
        raise PatchTargetMissingError(
            "File to patch not found or is not writable.",
            hint="The base profile layout may have changed upstream.",
            context={"path": str(target)},
        )
    return target
