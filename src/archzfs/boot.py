"""Kernel and init-image references across the profile's boot mechanisms."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from archzfs.config import BuildConfiguration
from archzfs.errors import MutationError, PatchTargetMissingError
from archzfs.observability import StructuredLogger
from archzfs.patching import PatchOperation, apply_patch
from archzfs.profile import ProfileTree

STAGE = "boot"

PRESET_DIR = Path("airootfs/etc/mkinitcpio.d")
PRESET_COMMENT = "package on archiso"


@dataclass(frozen=True, slots=True)
class BootReference:
    """The file names a boot mechanism loads for one kernel package."""

    kernel: str

    @property
    def kernel_image(self) -> str:
        return f"vmlinuz-{self.kernel}"

    @property
    def init_image(self) -> str:
        return f"initramfs-{self.kernel}.img"

    def patches_to(self, replacement: BootReference, path: Path) -> tuple[PatchOperation, ...]:
        """Substring patches, so both names match wherever they sit in a line."""
        return (
            PatchOperation(path, self.kernel_image, replacement.kernel_image, anchor="substring"),
            PatchOperation(path, self.init_image, replacement.init_image, anchor="substring"),
        )


@dataclass(frozen=True, slots=True)
class BootMechanism:
    name: str
    label: str
    files: tuple[str, ...]

    def paths(self, tree: ProfileTree, kernel: str) -> tuple[Path, ...]:
        return tuple(tree.root / template.format(kernel=kernel) for template in self.files)


MKINITCPIO = BootMechanism(
    name="mkinitcpio",
    label="mkinitcpio preset",
    files=(f"{PRESET_DIR}/{{kernel}}.preset",),
)
SYSLINUX = BootMechanism(
    name="syslinux",
    label="syslinux configuration",
    files=(
        "syslinux/archiso_sys-linux.cfg",
        "syslinux/archiso_pxe-linux.cfg",
    ),
)
SYSTEMD_BOOT = BootMechanism(
    name="systemd-boot",
    label="systemd-boot configuration",
    files=(
        "efiboot/loader/entries/01-archiso-x86_64-linux.conf",
        "efiboot/loader/entries/02-archiso-x86_64-speech-linux.conf",
    ),
)
GRUB = BootMechanism(
    name="grub",
    label="GRUB configuration",
    files=(
        "grub/grub.cfg",
        "grub/loopback.cfg",
    ),
)

BOOT_MECHANISMS = (MKINITCPIO, SYSLINUX, SYSTEMD_BOOT, GRUB)


def patch_boot_mechanisms(
    tree: ProfileTree,
    config: BuildConfiguration,
    logger: StructuredLogger,
) -> None:
    """Point every boot mechanism at the replacement kernel.

    The mkinitcpio preset is renamed first; its file name embeds the kernel
    package name and later lookups expect the new one.
    """
    stock = BootReference(config.default_kernel)
    replacement = BootReference(config.kernel)

    preset = rename_preset(tree, config)
    logger.info(STAGE, f"Renamed mkinitcpio preset to {preset.name}")

    for mechanism in BOOT_MECHANISMS:
        for path in mechanism.paths(tree, config.kernel):
            _patch_references(path, stock, replacement)
            logger.info(STAGE, f"Patched old kernel image references at {path}")
        if mechanism is MKINITCPIO:
            _annotate_preset(preset, config.kernel)
        logger.info(STAGE, f"Patched {mechanism.label} to boot {config.kernel}")


def rename_preset(tree: ProfileTree, config: BuildConfiguration) -> Path:
    source = tree.root / PRESET_DIR / f"{config.default_kernel}.preset"
    target = tree.root / PRESET_DIR / f"{config.kernel}.preset"
    if not source.is_file():
        raise PatchTargetMissingError(
            "mkinitcpio preset not found.",
            hint="The base profile layout may have changed upstream.",
            context={"path": str(source)},
        )
    return source.rename(target)


def _patch_references(path: Path, stock: BootReference, replacement: BootReference) -> None:
    for patch in stock.patches_to(replacement, path):
        if not apply_patch(patch):
            raise MutationError(
                "Boot configuration does not reference the default kernel.",
                hint="The boot loader configuration format may have changed upstream.",
                context={"path": str(path), "expected": patch.old},
            )


def _annotate_preset(preset: Path, kernel: str) -> None:
    annotated = apply_patch(
        PatchOperation(
            preset,
            PRESET_COMMENT,
            f"{PRESET_COMMENT}, modified to work with the '{kernel}' package",
            anchor="substring",
        )
    )
    if not annotated:
        raise MutationError(
            "mkinitcpio preset header not found.",
            hint="The preset comment format may have changed upstream.",
            context={"path": str(preset), "expected": PRESET_COMMENT},
        )
