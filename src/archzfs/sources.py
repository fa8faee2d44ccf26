"""AUR source recipes: maintainer keys, recipe clones and ``makepkg`` builds."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from archzfs.errors import KeyRetrievalError, PackageBuildError, SourceFetchError
from archzfs.privilege import PrivilegeSession
from archzfs.process import run_command


def import_signing_keys(keys: Sequence[str], *, keyserver: str) -> None:
    """Fetch maintainer keys so ``makepkg`` can verify signed sources."""
    if not keys:
        return
    run_command(
        ["gpg", "--keyserver", keyserver, "--recv-keys", *keys],
        error=KeyRetrievalError,
        message="Unable to import maintainer signing keys.",
        hint="Check network access to the key server; unsigned sources are not trusted.",
        operation="import_signing_keys",
    )


def clone_recipe(url: str, destination: Path) -> Path:
    run_command(
        ["git", "clone", "--quiet", url, destination],
        error=SourceFetchError,
        message="Unable to clone source recipe.",
        hint="Ensure the recipe URL is reachable.",
        operation="clone_recipe",
    )
    return destination


def build_package(recipe_dir: Path, *, name: str, session: PrivilegeSession) -> tuple[Path, ...]:
    """Run ``makepkg -s`` in *recipe_dir* and return the built package files.

    ``makepkg`` runs as the invoking user and calls sudo itself to install
    build dependencies, so the session is refreshed first.
    """
    session.refresh()
    run_command(
        ["makepkg", "-s", "--noconfirm"],
        error=PackageBuildError,
        message=f"Building package {name} failed.",
        hint="Inspect the makepkg output above.",
        operation="build_package",
        cwd=recipe_dir,
        capture=False,
    )
    artifacts = package_files(recipe_dir, name)
    if not artifacts:
        raise PackageBuildError(
            f"makepkg produced no package for {name}.",
            context={"operation": "build_package", "cwd": str(recipe_dir)},
        )
    return artifacts


def package_files(directory: Path, name: str) -> tuple[Path, ...]:
    """Return built ``<name>-*.pkg*`` files, signatures included.

    Split ``<name>-debug`` packages from makepkg's ``debug`` option are left out.
    """
    debug = f"{name}-debug-"
    return tuple(
        path
        for path in sorted(directory.glob(f"{name}-*.pkg*"))
        if not path.name.startswith(debug)
    )


def installable(files: Sequence[Path]) -> tuple[Path, ...]:
    return tuple(path for path in files if not path.name.endswith(".sig"))
