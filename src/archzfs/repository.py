"""Local pacman repository holding the ZFS packages built from source."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from archzfs.config import BuildConfiguration, Workspace
from archzfs.errors import PackageBuildError
from archzfs.observability import StructuredLogger
from archzfs.privilege import PrivilegeSession
from archzfs.process import run_command
from archzfs.sources import (
    build_package,
    clone_recipe,
    import_signing_keys,
    installable,
    package_files,
)

STAGE = "repository"


@dataclass(frozen=True, slots=True)
class RepositoryArtifact:
    name: str
    directory: Path
    index: Path
    packages: tuple[Path, ...]
    reused: bool = False

    @property
    def server_url(self) -> str:
        return self.directory.resolve().as_uri()


def build_repository(
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> RepositoryArtifact:
    """Build every source package and index them into a local repository.

    The index file is the completion marker: a directory without it is left
    over from an interrupted run and is rebuilt from scratch. An existing
    index is trusted without checking it against upstream.
    """
    directory = workspace.repository_dir
    index = workspace.repository_index

    if directory.is_dir() and index.is_file():
        logger.info(STAGE, "Existing ZFS packages found, skipping...")
        return RepositoryArtifact(
            name=config.repository_name,
            directory=directory,
            index=index,
            packages=_indexed_packages(config, directory),
            reused=True,
        )

    if directory.exists():
        logger.warning(STAGE, f"Discarding incomplete repository at {directory}")
        shutil.rmtree(directory)
    directory.mkdir(parents=True)

    logger.info(STAGE, "Building ZFS packages...")
    logger.info(STAGE, "Importing the OpenZFS maintainers' signing keys...")
    import_signing_keys(config.signing_keys, keyserver=config.keyserver)

    packages: list[Path] = []
    recipe_dirs: list[Path] = []
    for source in config.source_packages:
        logger.info(STAGE, f"Building package {source.name}...")
        recipe_dir = clone_recipe(source.url, directory / source.name)
        if recipe_dirs:
            _share_source_bundles(recipe_dirs[-1], recipe_dir, config.shared_source_glob)
        recipe_dirs.append(recipe_dir)

        for artifact in build_package(recipe_dir, name=source.name, session=session):
            target = directory / artifact.name
            shutil.copy2(artifact, target)
            packages.append(target)

    for recipe_dir in recipe_dirs:
        shutil.rmtree(recipe_dir)

    added = installable(packages)
    run_command(
        ["repo-add", index, *added],
        error=PackageBuildError,
        message="Unable to index the local repository.",
        operation="repo_add",
    )
    logger.info(STAGE, f"ZFS packages stored in local repository at {index}")
    return RepositoryArtifact(
        name=config.repository_name,
        directory=directory,
        index=index,
        packages=added,
    )


def _share_source_bundles(previous: Path, current: Path, pattern: str) -> None:
    """Copy downloaded source bundles and signatures to avoid fetching them twice."""
    for bundle in sorted(previous.glob(pattern)):
        if bundle.is_file() and ".pkg." not in bundle.name:
            shutil.copy2(bundle, current / bundle.name)


def _indexed_packages(config: BuildConfiguration, directory: Path) -> tuple[Path, ...]:
    found: list[Path] = []
    for source in config.source_packages:
        found.extend(installable(package_files(directory, source.name)))
    return tuple(found)
