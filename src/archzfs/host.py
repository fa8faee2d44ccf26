"""Host toolchain preparation: build tools and the git version of archiso."""

from __future__ import annotations

import shutil
from pathlib import Path

from archzfs.config import BuildConfiguration, Workspace
from archzfs.errors import PackageManagerError
from archzfs.observability import StructuredLogger
from archzfs.privilege import PrivilegeSession
from archzfs.process import probe_command
from archzfs.sources import (
    build_package,
    clone_recipe,
    import_signing_keys,
    installable,
    package_files,
)

STAGE = "host"


def prepare_host(
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    install_build_tools(config, session, logger)
    ensure_archiso(config, workspace, session, logger)


def install_build_tools(
    config: BuildConfiguration,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    logger.info(STAGE, "Ensuring basic development tools, openssh and dkms are installed...")
    session.run(
        ["pacman", "-S", "--needed", "--noconfirm", *config.host_packages],
        error=PackageManagerError,
        message="Unable to install host build tools.",
        operation="install_build_tools",
        capture=False,
    )


def ensure_archiso(
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    """Install the git build of archiso, which tracks upstream package changes
    between monthly releases more closely than the stock package.

    An installed package is trusted as-is; its version is not compared with
    the AUR recipe.
    """
    package = config.archiso_package
    if probe_command(["pacman", "-Q", package]):
        logger.info(STAGE, f"{package} is already installed, skipping...")
        return
    logger.info(STAGE, f"{package} is not installed")

    if probe_command(["pacman", "-Q", "archiso"]):
        logger.info(STAGE, "archiso is installed, removing...")
        session.run(
            ["pacman", "-R", "--noconfirm", "archiso"],
            error=PackageManagerError,
            message="Unable to remove the stock archiso package.",
            operation="remove_archiso",
        )

    build_dir = workspace.archiso_build_dir
    existing = installable(package_files(build_dir, package)) if build_dir.is_dir() else ()
    if existing:
        logger.info(STAGE, f"Existing {package} build directory found, installing from here...")
        _install_local(existing, session, package)
        return

    if build_dir.exists():
        shutil.rmtree(build_dir)

    logger.info(STAGE, "Importing the archiso maintainers' signing keys...")
    import_signing_keys(config.archiso_keys, keyserver=config.keyserver)

    logger.info(STAGE, f"Cloning the {package} AUR repository...")
    clone_recipe(config.archiso_url, build_dir)

    logger.info(STAGE, f"Building {package}...")
    artifacts = build_package(build_dir, name=package, session=session)

    logger.info(STAGE, f"Installing {package}...")
    _install_local(installable(artifacts), session, package)


def _install_local(artifacts: tuple[Path, ...], session: PrivilegeSession, package: str) -> None:
    session.run(
        ["pacman", "-U", "--noconfirm", *artifacts],
        error=PackageManagerError,
        message=f"Unable to install {package} from local build.",
        operation="install_local",
    )
