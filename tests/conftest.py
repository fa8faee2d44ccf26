"""Shared test fixtures: a miniature releng profile and a fake process table."""

from __future__ import annotations

import dataclasses
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from archzfs.config import BuildConfiguration, Workspace, default_configuration
from archzfs.observability import StructuredLogger
from archzfs.privilege import PrivilegeSession

Effect = Callable[[list[str], Path | None], None]

FINGERPRINT = "256 SHA256:3bW0bQmJ2c9m6f3q3xkzF8mTtG5n0a1Kq1Q4b6hXh2k root@builder (ED25519)"
ISO_NAME = "archlinux-zfs-2024.01.23-x86_64.iso"

PROFILEDEF = """\
#!/usr/bin/env bash
# shellcheck disable=SC2034

iso_name="archlinux"
iso_label="ARCH_$(date --date="@${SOURCE_DATE_EPOCH:-$(date +%s)}" +%Y%m)"
iso_publisher="Arch Linux <https://archlinux.org>"
iso_application="Arch Linux Live/Rescue DVD"
install_dir="arch"
buildmodes=('iso')
bootmodes=('bios.syslinux.mbr' 'bios.syslinux.eltorito'
           'uefi-x64.systemd-boot.esp' 'uefi-x64.systemd-boot.eltorito')
arch="x86_64"
pacman_conf="pacman.conf"
airootfs_image_type="squashfs"
file_permissions=(
  ["/etc/shadow"]="0:0:400"
  ["/root"]="0:0:750"
  ["/root/.automated_script.sh"]="0:0:755"
  ["/root/.gnupg"]="0:0:700"
  ["/usr/local/bin/choose-mirror"]="0:0:755"
)
"""

PRESET = """\
# mkinitcpio preset file for the 'linux' package on archiso

PRESETS=('archiso')

ALL_kver='/boot/vmlinuz-linux'
archiso_config='/etc/mkinitcpio.conf.d/archiso.conf'

archiso_image="/boot/initramfs-linux.img"
"""

SYSLINUX_SYS = """\
LABEL arch64
TEXT HELP
Boot the Arch Linux install medium on BIOS.
ENDTEXT
MENU LABEL Arch Linux install medium (x86_64, BIOS)
LINUX /%INSTALL_DIR%/boot/x86_64/vmlinuz-linux
INITRD /%INSTALL_DIR%/boot/intel-ucode.img,/%INSTALL_DIR%/boot/x86_64/initramfs-linux.img
APPEND archisobasedir=%INSTALL_DIR% archisosearchuuid=%ARCHISO_UUID%
"""

SYSLINUX_PXE = """\
LABEL arch64_nbd
MENU LABEL Arch Linux install medium (x86_64, NBD)
LINUX ::/%INSTALL_DIR%/boot/x86_64/vmlinuz-linux
INITRD ::/%INSTALL_DIR%/boot/x86_64/initramfs-linux.img
APPEND archisobasedir=%INSTALL_DIR% archisosearchuuid=%ARCHISO_UUID% archiso_nbd_srv=${pxeserver}
"""

LOADER_ENTRY = """\
title    Arch Linux install medium (x86_64, UEFI{extra})
sort-key 01
linux    /%INSTALL_DIR%/boot/x86_64/vmlinuz-linux
initrd   /%INSTALL_DIR%/boot/x86_64/initramfs-linux.img
options  archisobasedir=%INSTALL_DIR% archisosearchuuid=%ARCHISO_UUID%{options}
"""

GRUB_CFG = """\
menuentry "Arch Linux install medium (x86_64, UEFI)" --class arch --class gnu-linux --class gnu --class os --id 'archlinux' {
    set gfxpayload=keep
    linux /%INSTALL_DIR%/boot/x86_64/vmlinuz-linux archisobasedir=%INSTALL_DIR% archisosearchuuid=%ARCHISO_UUID%
    initrd /%INSTALL_DIR%/boot/x86_64/initramfs-linux.img
}
"""

PACKAGES = [
    "arch-install-scripts",
    "base",
    "broadcom-wl",
    "linux",
    "linux-firmware",
    "zsh",
]


def write_releng(root: Path) -> Path:
    """Write a trimmed-down copy of the archiso releng profile."""
    files = {
        "profiledef.sh": PROFILEDEF,
        "pacman.conf": "[options]\nHoldPkg = pacman glibc\n\n[core]\nInclude = /etc/pacman.d/mirrorlist\n",
        "packages.x86_64": "".join(f"{package}\n" for package in PACKAGES),
        "airootfs/etc/motd": "To install Arch Linux follow the installation guide:\n",
        "airootfs/etc/mkinitcpio.d/linux.preset": PRESET,
        "syslinux/archiso_sys-linux.cfg": SYSLINUX_SYS,
        "syslinux/archiso_pxe-linux.cfg": SYSLINUX_PXE,
        "efiboot/loader/entries/01-archiso-x86_64-linux.conf": LOADER_ENTRY.format(
            extra="", options=""
        ),
        "efiboot/loader/entries/02-archiso-x86_64-speech-linux.conf": LOADER_ENTRY.format(
            extra=", with speech", options=" accessibility=on"
        ),
        "grub/grub.cfg": GRUB_CFG,
        "grub/loopback.cfg": GRUB_CFG.replace("%INSTALL_DIR%", "${isopath}"),
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@dataclass(frozen=True, slots=True)
class Call:
    argv: list[str]
    cwd: Path | None
    input: str | None
    timeout: float | None

    @property
    def command(self) -> list[str]:
        """argv with a leading ``sudo --`` stripped."""
        if self.argv[:2] == ["sudo", "--"]:
            return self.argv[2:]
        return self.argv

    @property
    def privileged(self) -> bool:
        return self.argv[:2] == ["sudo", "--"]


@dataclass(slots=True)
class _Handler:
    prefix: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    effect: Effect | None


@dataclass(slots=True)
class FakeProcesses:
    """Stands in for ``subprocess.run`` and records every invocation.

    Handlers match on a prefix of the command (after ``sudo --``); the most
    recently registered match wins. Unmatched commands succeed silently.
    """

    calls: list[Call] = field(default_factory=list)
    handlers: list[_Handler] = field(default_factory=list)

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Effect | None = None,
    ) -> None:
        self.handlers.insert(0, _Handler(prefix, returncode, stdout, stderr, effect))

    def __call__(
        self,
        argv: list[str],
        *,
        cwd: str | None = None,
        input: str | None = None,
        timeout: float | None = None,
        **_: object,
    ) -> subprocess.CompletedProcess[str]:
        call = Call(
            argv=[str(arg) for arg in argv],
            cwd=Path(cwd) if cwd is not None else None,
            input=input,
            timeout=timeout,
        )
        self.calls.append(call)
        for handler in self.handlers:
            if tuple(call.command[: len(handler.prefix)]) == handler.prefix:
                if handler.effect is not None:
                    handler.effect(call.command, call.cwd)
                return subprocess.CompletedProcess(
                    call.argv, handler.returncode, stdout=handler.stdout, stderr=handler.stderr
                )
        return subprocess.CompletedProcess(call.argv, 0, stdout="", stderr="")

    def commands(self, program: str | None = None) -> list[list[str]]:
        return [
            call.command
            for call in self.calls
            if program is None or (call.command and call.command[0] == program)
        ]


def simulate_toolchain(fake: FakeProcesses) -> FakeProcesses:
    """Give the usual external tools plausible filesystem side effects."""

    def clone(argv: list[str], cwd: Path | None) -> None:
        destination = Path(argv[-1])
        destination.mkdir(parents=True)
        (destination / "PKGBUILD").write_text(f"pkgname={destination.name}\n", encoding="utf-8")

    def makepkg(argv: list[str], cwd: Path | None) -> None:
        assert cwd is not None
        (cwd / f"{cwd.name}-2.2.2-1-x86_64.pkg.tar.zst").write_bytes(b"package")
        if not (cwd / "zfs-2.2.2.tar.gz").exists():
            (cwd / "zfs-2.2.2.tar.gz").write_bytes(b"source bundle")
            (cwd / "zfs-2.2.2.tar.gz.asc").write_bytes(b"signature")

    def repo_add(argv: list[str], cwd: Path | None) -> None:
        Path(argv[1]).write_bytes(b"index")

    def remove(argv: list[str], cwd: Path | None) -> None:
        shutil.rmtree(argv[-1], ignore_errors=True)

    def move(argv: list[str], cwd: Path | None) -> None:
        shutil.move(argv[1], argv[2])

    def mkarchiso(argv: list[str], cwd: Path | None) -> None:
        out_dir = Path(argv[argv.index("-o") + 1])
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / ISO_NAME).write_bytes(b"iso")

    fake.on("git", "clone", effect=clone)
    fake.on("makepkg", effect=makepkg)
    fake.on("repo-add", effect=repo_add)
    fake.on("rm", "-rf", effect=remove)
    fake.on("mv", effect=move)
    fake.on("mkarchiso", effect=mkarchiso)
    fake.on("ssh-keygen", stdout=f"{FINGERPRINT}\n")
    return fake


@pytest.fixture
def processes(monkeypatch: pytest.MonkeyPatch) -> FakeProcesses:
    fake = FakeProcesses()
    monkeypatch.setattr("archzfs.process.subprocess.run", fake)
    return fake


@pytest.fixture
def toolchain(processes: FakeProcesses) -> FakeProcesses:
    return simulate_toolchain(processes)


@pytest.fixture
def releng(tmp_path: Path) -> Path:
    return write_releng(tmp_path / "releng")


@pytest.fixture
def config(releng: Path) -> BuildConfiguration:
    return dataclasses.replace(default_configuration(), base_profile=releng)


@pytest.fixture
def workspace(tmp_path: Path, config: BuildConfiguration) -> Workspace:
    root = tmp_path / "home"
    root.mkdir()
    return Workspace.from_configuration(root, config)


@pytest.fixture
def session() -> PrivilegeSession:
    return PrivilegeSession(user="builder", uid=1000, gid=1000, secret="hunter2")


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(color=False)
