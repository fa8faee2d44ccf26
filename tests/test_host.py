import pytest

from archzfs.config import BuildConfiguration, Workspace
from archzfs.errors import PackageManagerError
from archzfs.host import ensure_archiso, prepare_host
from archzfs.observability import StructuredLogger
from archzfs.privilege import PrivilegeSession


def test_prepare_host_installs_build_tools(
    toolchain,
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    prepare_host(config, workspace, session, logger)

    privileged = [call.command for call in toolchain.calls if call.privileged]
    assert privileged == [["pacman", "-S", "--needed", "--noconfirm", *config.host_packages]]
    assert "archiso-git is already installed, skipping..." in logger.messages()


def test_archiso_git_is_built_from_aur_when_missing(
    toolchain,
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    toolchain.on("pacman", "-Q", "archiso-git", returncode=1)
    toolchain.on("pacman", "-Q", "archiso", returncode=1)

    ensure_archiso(config, workspace, session, logger)

    build_dir = workspace.archiso_build_dir
    package = build_dir / "archiso-git-2.2.2-1-x86_64.pkg.tar.zst"
    assert [call for call in toolchain.commands() if call[0] in {"gpg", "git", "makepkg"}] == [
        ["gpg", "--keyserver", config.keyserver, "--recv-keys", *config.archiso_keys],
        ["git", "clone", "--quiet", config.archiso_url, str(build_dir)],
        ["makepkg", "-s", "--noconfirm"],
    ]
    assert toolchain.commands("pacman")[-1] == ["pacman", "-U", "--noconfirm", str(package)]
    assert not any(call[:2] == ["pacman", "-R"] for call in toolchain.commands("pacman"))


def test_stock_archiso_is_removed_first(
    toolchain,
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    toolchain.on("pacman", "-Q", "archiso-git", returncode=1)

    ensure_archiso(config, workspace, session, logger)

    pacman = [call for call in toolchain.calls if call.command[:1] == ["pacman"] and call.privileged]
    assert [call.command[:2] for call in pacman] == [["pacman", "-R"], ["pacman", "-U"]]


def test_previous_archiso_build_is_installed_without_rebuilding(
    toolchain,
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    toolchain.on("pacman", "-Q", "archiso-git", returncode=1)
    toolchain.on("pacman", "-Q", "archiso", returncode=1)
    build_dir = workspace.archiso_build_dir
    build_dir.mkdir()
    package = build_dir / "archiso-git-80-1-any.pkg.tar.zst"
    package.write_bytes(b"package")
    (build_dir / "archiso-git-80-1-any.pkg.tar.zst.sig").write_bytes(b"sig")

    ensure_archiso(config, workspace, session, logger)

    assert toolchain.commands("git") == []
    assert toolchain.commands("makepkg") == []
    assert toolchain.commands("pacman")[-1] == ["pacman", "-U", "--noconfirm", str(package)]


def test_package_manager_failure_is_reported(
    toolchain,
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> None:
    toolchain.on("pacman", "-S", returncode=1, stderr="failed to synchronize all databases")

    with pytest.raises(PackageManagerError) as excinfo:
        prepare_host(config, workspace, session, logger)

    assert excinfo.value.context["operation"] == "install_build_tools"
