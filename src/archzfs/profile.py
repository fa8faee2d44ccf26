"""Profile tree materialization and the non-boot profile mutations."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from archzfs.config import BuildConfiguration, Workspace
from archzfs.errors import (
    MutationError,
    PermissionAnchorNotFoundError,
    ReplacementNotFoundError,
)
from archzfs.observability import BOLD_WHITE, RESET, StructuredLogger
from archzfs.patching import PatchOperation, append_text, apply_patch, ensure_patch_target
from archzfs.privilege import PrivilegeSession
from archzfs.process import run_command
from archzfs.repository import RepositoryArtifact

STAGE = "profile"

ROOT_PERMISSION_ANCHOR = '["/root"]="0:0:750"'
SSH_PERMISSION_ENTRIES = (
    '["/root/.ssh"]="0:0:0700"',
    '["/root/.ssh/authorized_keys"]="0:0:0600"',
)


@dataclass(frozen=True, slots=True)
class ProfileTree:
    root: Path
    workspace: Path
    arch: str = "x86_64"

    @property
    def packages_file(self) -> Path:
        return self.root / f"packages.{self.arch}"

    @property
    def pacman_conf(self) -> Path:
        return self.root / "pacman.conf"

    @property
    def definition_file(self) -> Path:
        return self.root / "profiledef.sh"

    @property
    def airootfs(self) -> Path:
        return self.root / "airootfs"

    @property
    def motd(self) -> Path:
        return self.airootfs / "etc" / "motd"

    @property
    def authorized_keys(self) -> Path:
        return self.airootfs / "root" / ".ssh" / "authorized_keys"


def materialize_profile(
    config: BuildConfiguration,
    workspace: Workspace,
    session: PrivilegeSession,
    logger: StructuredLogger,
) -> ProfileTree:
    """Clone the base profile into a fresh per-variant directory.

    A previous tree is always deleted: a partially mutated tree cannot be
    told apart from a clean one. The previous ``mkarchiso`` run left it
    root-owned, hence the privileged removal.
    """
    base = config.base_profile
    if not base.is_dir():
        raise MutationError(
            "Base profile not found.",
            hint="Install archiso, which ships the releng profile.",
            context={"path": str(base)},
        )

    logger.info(STAGE, f"Archiso build will take place at: {workspace.archiso_dir}")
    if workspace.archiso_dir.exists():
        logger.info(STAGE, "Existing archiso build directory found, deleting...")
        session.run(
            ["rm", "-rf", workspace.archiso_dir],
            error=MutationError,
            message="Unable to delete the previous archiso build directory.",
            operation="materialize_profile",
        )

    workspace.archiso_dir.mkdir(parents=True)
    shutil.copytree(base, workspace.profile_dir, symlinks=True)
    return ProfileTree(root=workspace.profile_dir, workspace=workspace.archiso_dir, arch=config.arch)


def register_repository(
    tree: ProfileTree,
    repository: RepositoryArtifact,
    logger: StructuredLogger,
) -> None:
    append_text(
        tree.pacman_conf,
        f"\n[{repository.name}]\n"
        "SigLevel = Optional TrustAll\n"
        f"Server = {repository.server_url}\n\n",
    )
    logger.info(STAGE, "Added local ZFS repository to archiso")


def edit_package_list(
    tree: ProfileTree,
    config: BuildConfiguration,
    logger: StructuredLogger,
) -> tuple[ReplacementNotFoundError, ...]:
    """Swap replaced packages, append added ones and re-sort the list.

    Missing replacement targets are returned and logged as warnings: package
    lists drift between upstream releases. The list is sorted byte-wise, as
    ``LC_ALL=C sort`` does upstream, and duplicate entries are dropped.
    """
    path = tree.packages_file
    missing: list[ReplacementNotFoundError] = []
    for old, new in config.package_replacements.items():
        if apply_patch(PatchOperation(path, old, new, anchor="line")):
            logger.info(STAGE, f"Replaced package {old} with {new}")
            continue
        warning = ReplacementNotFoundError(
            f"Package {old} not found in package list, not replaced with {new}.",
            context={"path": str(path), "old": old, "new": new},
        )
        logger.warning(STAGE, warning.message)
        missing.append(warning)

    if config.packages_to_add:
        append_text(path, "".join(f"{package}\n" for package in config.packages_to_add))
        for package in config.packages_to_add:
            logger.info(STAGE, f"Added package {package}")

    lines = {line.strip() for line in path.read_text(encoding="utf-8").splitlines()}
    lines.discard("")
    ordered = sorted(lines, key=lambda line: line.encode("utf-8"))
    path.write_text("".join(f"{line}\n" for line in ordered), encoding="utf-8")
    return tuple(missing)


def rebrand(tree: ProfileTree, config: BuildConfiguration, logger: StructuredLogger) -> None:
    """Rename the ISO and its label so ZFS images are easy to tell apart."""
    append_text(tree.motd, f"\n{BOLD_WHITE}{config.motd_banner}{RESET}\n")

    definition = tree.definition_file
    patches = (
        PatchOperation(
            definition,
            'iso_name="archlinux"',
            f'iso_name="archlinux-{config.variant}"',
            anchor="line",
        ),
        PatchOperation(
            definition,
            'iso_label="ARCH_',
            f'iso_label="ARCH_{config.label_tag}_',
            anchor="substring",
        ),
    )
    for patch in patches:
        if not apply_patch(patch):
            raise MutationError(
                "Branding field not found in profile definition.",
                hint="Did the format of profiledef.sh change?",
                context={"path": str(definition), "expected": patch.old},
            )
    logger.info(STAGE, f"Branding updated to include {config.label_tag}")


def inject_remote_access(
    tree: ProfileTree,
    config: BuildConfiguration,
    logger: StructuredLogger,
) -> None:
    """Allow SSH logins to root with the configured public key.

    ``profiledef.sh`` declares a ``file_permissions`` dictionary; the entries
    for the key are inserted right after the one for ``/root`` so they stay
    inside it. The key fingerprint goes into the MOTD as a warning on boot.
    """
    key = config.ssh_pubkey
    if not key:
        logger.info(STAGE, "No SSH public key defined, skipping...")
        return

    definition = ensure_patch_target(tree.definition_file)
    tree.authorized_keys.parent.mkdir(parents=True, exist_ok=True)
    tree.authorized_keys.write_text(key if key.endswith("\n") else f"{key}\n", encoding="utf-8")
    logger.info(STAGE, f"Public key added to authorized_keys under root: '{key.strip()}'")

    inserted = apply_patch(
        PatchOperation(
            definition,
            ROOT_PERMISSION_ANCHOR,
            "\n".join(SSH_PERMISSION_ENTRIES),
            anchor="insert_after",
        )
    )
    if not inserted:
        raise PermissionAnchorNotFoundError(
            "Cannot find where the permissions list begins.",
            hint="Did the format of profiledef.sh change?",
            context={"path": str(definition), "anchor": ROOT_PERMISSION_ANCHOR},
        )
    logger.info(STAGE, f"Patched {definition} to include permissions for /root/.ssh files")

    fingerprint = run_command(
        ["ssh-keygen", "-l", "-f", tree.authorized_keys],
        error=MutationError,
        message="Unable to fingerprint the SSH public key.",
        hint="Check that the configured key is a valid OpenSSH public key.",
        operation="inject_remote_access",
    ).stdout.strip()
    append_text(
        tree.motd,
        f"\n{BOLD_WHITE}This image allows SSH connections to the root user "
        f"with the following public key:{RESET}\n{fingerprint}\n",
    )
    logger.info(STAGE, "Added SSH key fingerprint to motd")
