"""ISO composition via ``mkarchiso``.

``mkarchiso`` needs root and leaves root-owned output behind, so the image is
moved back to the invoking user's directory and handed over to that user.
The per-variant build tree is removed whatever the outcome; multi-gigabyte
work directories must not pile up across runs.
"""

from __future__ import annotations

from pathlib import Path

from archzfs.config import Workspace
from archzfs.errors import ArchzfsError, BuildError
from archzfs.observability import StructuredLogger
from archzfs.privilege import PrivilegeSession
from archzfs.profile import ProfileTree

STAGE = "compose"


def compose(
    tree: ProfileTree,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> Path:
    try:
        artifact = _build_and_collect(tree, workspace, session, logger)
    except BaseException:
        _discard_tree(tree, session, logger, strict=False)
        raise
    _discard_tree(tree, session, logger, strict=True)
    logger.info(STAGE, f"Build complete! The image is located at: {artifact}")
    return artifact


def _build_and_collect(
    tree: ProfileTree,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> Path:
    logger.info(STAGE, "Running mkarchiso...")
    session.run(
        ["mkarchiso", "-v", "-w", workspace.work_dir, "-o", workspace.out_dir, tree.root],
        error=BuildError,
        message="mkarchiso build failed.",
        hint="Check mkarchiso output above for details.",
        operation="mkarchiso",
        capture=False,
    )

    images = sorted(workspace.out_dir.glob("*.iso"))
    if len(images) != 1:
        raise BuildError(
            "Expected exactly one image in the mkarchiso output directory.",
            context={
                "operation": "collect",
                "out_dir": str(workspace.out_dir),
                "found": ", ".join(image.name for image in images),
            },
        )

    destination = workspace.root / images[0].name
    session.run(
        ["mv", images[0], destination],
        error=BuildError,
        message="Unable to move the image out of the build directory.",
        operation="collect",
    )
    session.run(
        ["chown", session.owner, destination],
        error=BuildError,
        message="Unable to restore ownership of the image.",
        operation="collect",
    )
    return destination


def _discard_tree(
    tree: ProfileTree,
    session: PrivilegeSession,
    logger: StructuredLogger,
    *,
    strict: bool,
) -> None:
    try:
        session.run(
            ["rm", "-rf", tree.workspace],
            error=BuildError,
            message="Unable to remove the archiso build directory.",
            operation="cleanup",
        )
    except ArchzfsError as exc:
        if strict:
            raise
        # The composition error is the one worth reporting.
        logger.warning(STAGE, f"Cleanup of {tree.workspace} failed: {exc.message}")
        return
    logger.info(STAGE, f"Removed build directory {tree.workspace}")
