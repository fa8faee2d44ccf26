"""Sequential build pipeline with an explicit state machine.

Stages run strictly one after another and are never retried. The first
failure moves the pipeline to ``failed`` and surfaces as a
:class:`~archzfs.errors.PipelineError` naming the stage.
"""

from __future__ import annotations

import getpass
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TypeVar

from archzfs.boot import patch_boot_mechanisms
from archzfs.compose import compose
from archzfs.config import BuildConfiguration, Workspace
from archzfs.errors import PipelineError, ReplacementNotFoundError
from archzfs.host import prepare_host
from archzfs.observability import StructuredLogger
from archzfs.privilege import (
    PrivilegeSession,
    SecretReader,
    current_user,
    ensure_unprivileged,
    prompt_secret,
    validate,
)
from archzfs.profile import (
    ProfileTree,
    edit_package_list,
    inject_remote_access,
    materialize_profile,
    rebrand,
    register_repository,
)
from archzfs.repository import RepositoryArtifact, build_repository

T = TypeVar("T")


class PipelineState(StrEnum):
    INIT = "init"
    ELEVATED = "elevated"
    HOST_READY = "host_ready"
    REPOSITORY_READY = "repository_ready"
    PROFILE_READY = "profile_ready"
    COMPOSED = "composed"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PipelineResult:
    state: PipelineState
    image: Path
    repository: RepositoryArtifact
    warnings: tuple[ReplacementNotFoundError, ...] = ()


def mutate_profile(
    tree: ProfileTree,
    repository: RepositoryArtifact,
    config: BuildConfiguration,
    logger: StructuredLogger,
) -> tuple[ReplacementNotFoundError, ...]:
    """Apply the profile mutations in their required order.

    Boot patching renames the mkinitcpio preset, so it runs before anything
    that could read it. Remote access anchors on ``profiledef.sh`` and runs
    after rebranding has finished editing that file.
    """
    register_repository(tree, repository, logger)
    warnings = edit_package_list(tree, config, logger)
    patch_boot_mechanisms(tree, config, logger)
    rebrand(tree, config, logger)
    inject_remote_access(tree, config, logger)
    return warnings


@dataclass(slots=True)
class Pipeline:
    config: BuildConfiguration
    workspace: Workspace
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    secret_reader: SecretReader = getpass.getpass
    state: PipelineState = field(init=False, default=PipelineState.INIT)
    failed_stage: str | None = field(init=False, default=None)

    def run(self) -> PipelineResult:
        session = self._stage("privilege", PipelineState.ELEVATED, self._elevate)
        self._stage(
            "host",
            PipelineState.HOST_READY,
            lambda: prepare_host(self.config, self.workspace, session, self.logger),
        )
        repository = self._stage(
            "repository",
            PipelineState.REPOSITORY_READY,
            lambda: build_repository(self.config, self.workspace, session, self.logger),
        )
        tree, warnings = self._stage(
            "profile",
            PipelineState.PROFILE_READY,
            lambda: self._prepare_profile(repository, session),
        )
        image = self._stage(
            "compose",
            PipelineState.COMPOSED,
            lambda: compose(tree, self.workspace, session, self.logger),
        )
        self.state = PipelineState.DONE
        return PipelineResult(
            state=self.state,
            image=image,
            repository=repository,
            warnings=warnings,
        )

    def _stage(self, name: str, target: PipelineState, action: Callable[[], T]) -> T:
        try:
            result = action()
        except Exception as exc:
            self.state = PipelineState.FAILED
            self.failed_stage = name
            raise PipelineError(stage=name, cause=exc) from exc
        self.state = target
        return result

    def _elevate(self) -> PrivilegeSession:
        ensure_unprivileged()
        user = current_user()
        self.logger.info("privilege", "User is not root")
        secret = prompt_secret(user, reader=self.secret_reader)
        session = validate(secret, user=user)
        self.logger.info(
            "privilege",
            f"Password for {user} accepted and sudo privileges confirmed.",
        )
        return session

    def _prepare_profile(
        self,
        repository: RepositoryArtifact,
        session: PrivilegeSession,
    ) -> tuple[ProfileTree, tuple[ReplacementNotFoundError, ...]]:
        tree = materialize_profile(self.config, self.workspace, session, self.logger)
        warnings = mutate_profile(tree, repository, self.config, self.logger)
        return tree, warnings
