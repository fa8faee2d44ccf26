"""Compiled-in build configuration and the workspace layout derived from it."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from archzfs.errors import ValidationError

# Kernel to replace the default kernel of the base profile with.
NEW_KERNEL = "linux-lts"

# Affects build directory naming and the ISO label.
ARCHISO_NAME = "zfs"

# Standard OpenSSH public key line; None leaves root SSH access disabled.
SSH_PUBKEY: str | None = None

KEYSERVER = "hkps://keyserver.ubuntu.com"
AUR_URL = "https://aur.archlinux.org"

OPENZFS_SIGNING_KEYS = (
    "4F3BA9AB6D1F8D683DC2DFB56AD860EED4598027",
    "C33DF142657ED1F7C328A2960AB9E991C6AF658B",
    "29D5610EAE2941E355A2FE8AB97467AAC77B9667",
)
ARCHISO_SIGNING_KEYS = (
    "991F6E3F0765CF6295888586139B09DA5BF0D338",
    "BB8E6F1B81CF0BB301D74D1CBF425A01E68B38EF",
)

HOST_PACKAGES = ("base-devel", "git", "gnupg", "openssh", "dkms")

VARIANT_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
PACKAGE_PATTERN = re.compile(r"^\S+$")


@dataclass(frozen=True, slots=True)
class SourcePackage:
    """A package built from an AUR source recipe."""

    name: str
    url: str

    @classmethod
    def from_aur(cls, name: str) -> SourcePackage:
        return cls(name=name, url=f"{AUR_URL}/{name}.git")


@dataclass(frozen=True, slots=True)
class BuildConfiguration:
    kernel: str
    variant: str
    packages_to_add: tuple[str, ...]
    package_replacements: Mapping[str, str]
    ssh_pubkey: str | None = None
    source_packages: tuple[SourcePackage, ...] = (
        SourcePackage.from_aur("zfs-dkms"),
        SourcePackage.from_aur("zfs-utils"),
    )
    signing_keys: tuple[str, ...] = OPENZFS_SIGNING_KEYS
    keyserver: str = KEYSERVER
    shared_source_glob: str = "zfs-*.tar.*"
    repository_name: str = "local-zfs-repo"
    base_profile: Path = Path("/usr/share/archiso/configs/releng")
    default_kernel: str = "linux"
    arch: str = "x86_64"
    host_packages: tuple[str, ...] = HOST_PACKAGES
    archiso_package: str = "archiso-git"
    archiso_url: str = f"{AUR_URL}/archiso-git.git"
    archiso_keys: tuple[str, ...] = ARCHISO_SIGNING_KEYS
    motd_banner: str = (
        "This is not an official Arch Linux installation image, "
        "it has been modified to include OpenZFS."
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "package_replacements", MappingProxyType(dict(self.package_replacements))
        )
        object.__setattr__(self, "base_profile", Path(self.base_profile))
        self._validate()

    @property
    def label_tag(self) -> str:
        return self.variant.upper()

    def _validate(self) -> None:
        for name, value in (("kernel", self.kernel), ("default_kernel", self.default_kernel)):
            _require_package_name(value, field_name=name)
        if not VARIANT_PATTERN.fullmatch(self.variant):
            raise ValidationError(
                "Image variant tag must be lowercase alphanumeric.",
                hint="Use a tag such as `zfs`; it names directories and the ISO label.",
                context={"variant": self.variant},
            )
        for package in self.packages_to_add:
            _require_package_name(package, field_name="packages_to_add")
        for old, new in self.package_replacements.items():
            _require_package_name(old, field_name="package_replacements")
            _require_package_name(new, field_name="package_replacements")
        if not self.source_packages:
            raise ValidationError("At least one source package is required.")
        for source in self.source_packages:
            _require_package_name(source.name, field_name="source_packages")
        if self.ssh_pubkey is not None:
            key = self.ssh_pubkey
            if not key.strip() or "\n" in key.rstrip("\n") or "\r" in key:
                raise ValidationError(
                    "SSH public key must be a single non-empty line.",
                    hint="Paste the contents of e.g. ~/.ssh/id_ed25519.pub.",
                )


@dataclass(frozen=True, slots=True)
class Workspace:
    """Every path a run touches, rooted at the invoking user's directory."""

    root: Path
    repository_dir: Path
    repository_index: Path
    archiso_dir: Path
    profile_dir: Path
    archiso_build_dir: Path
    work_dir: Path = field(init=False)
    out_dir: Path = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "work_dir", self.archiso_dir / "work")
        object.__setattr__(self, "out_dir", self.archiso_dir / "out")

    @classmethod
    def from_configuration(cls, root: str | Path, config: BuildConfiguration) -> Workspace:
        root_path = Path(root).resolve()
        repository_dir = root_path / f"{config.variant}-build"
        archiso_dir = root_path / f"archiso-{config.variant}"
        return cls(
            root=root_path,
            repository_dir=repository_dir,
            repository_index=repository_dir / f"{config.repository_name}.db.tar",
            archiso_dir=archiso_dir,
            profile_dir=archiso_dir / f"{config.base_profile.name}-{config.variant}",
            archiso_build_dir=root_path / config.archiso_package,
        )


def default_configuration(
    *,
    kernel: str = NEW_KERNEL,
    variant: str = ARCHISO_NAME,
    ssh_pubkey: str | None = SSH_PUBKEY,
) -> BuildConfiguration:
    """Build the compiled-in configuration.

    Kernel headers are added so that dkms modules can be built in the image.
    The broadcom driver is swapped for its dkms variant so it does not pull
    the stock kernel back in.
    """
    return BuildConfiguration(
        kernel=kernel,
        variant=variant,
        packages_to_add=(f"{kernel}-headers", "dkms", "zfs-dkms", "zfs-utils"),
        package_replacements={"linux": kernel, "broadcom-wl": "broadcom-wl-dkms"},
        ssh_pubkey=ssh_pubkey,
    )


def _require_package_name(value: str, *, field_name: str) -> None:
    if not PACKAGE_PATTERN.fullmatch(value or ""):
        raise ValidationError(
            "Package names must be non-empty and contain no whitespace.",
            context={"field": field_name, "value": value},
        )
