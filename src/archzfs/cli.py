"""Command-line entry point; the only place errors turn into exit codes."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from archzfs.config import Workspace, default_configuration
from archzfs.errors import ArchzfsError, PipelineError
from archzfs.observability import StructuredLogger
from archzfs.pipeline import Pipeline

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    return argparse.ArgumentParser(
        prog="archzfs",
        description=(
            "Build an Arch Linux installation image with OpenZFS and a replacement "
            "kernel. Run from the directory that should receive the ISO, as a "
            "regular user with sudo privileges. Configuration is compiled in."
        ),
    )


def main(argv: Sequence[str] | None = None) -> int:
    build_parser().parse_args(argv)
    logger = StructuredLogger()
    exit_code = _run(logger)
    if exit_code != 0:
        logger.error("archzfs", f"Non-zero exit code of {exit_code}")
    return exit_code


def _run(logger: StructuredLogger) -> int:
    try:
        config = default_configuration()
        workspace = Workspace.from_configuration(Path.cwd(), config)
        Pipeline(config=config, workspace=workspace, logger=logger).run()
    except PipelineError as exc:
        logger.error(exc.stage, str(exc.cause))
        return EXIT_FAILURE
    except ArchzfsError as exc:
        logger.error("archzfs", str(exc))
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.error("archzfs", "Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logger.error("archzfs", f"Unexpected error: {type(exc).__name__}: {exc}")
        return EXIT_FAILURE
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
