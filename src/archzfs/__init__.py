"""Build Arch Linux installation images carrying OpenZFS and a replacement kernel."""

from .config import BuildConfiguration, SourcePackage, Workspace, default_configuration
from .errors import (
    ArchzfsError,
    AuthError,
    BuildError,
    IdentityError,
    KeyRetrievalError,
    MutationError,
    PackageBuildError,
    PackageManagerError,
    PatchError,
    PatchTargetMissingError,
    PermissionAnchorNotFoundError,
    PipelineError,
    PromptTimeoutError,
    ReplacementNotFoundError,
    SourceFetchError,
    ValidationError,
)
from .pipeline import Pipeline, PipelineResult, PipelineState

__all__ = [
    "ArchzfsError",
    "AuthError",
    "BuildConfiguration",
    "BuildError",
    "IdentityError",
    "KeyRetrievalError",
    "MutationError",
    "PackageBuildError",
    "PackageManagerError",
    "PatchError",
    "PatchTargetMissingError",
    "PermissionAnchorNotFoundError",
    "Pipeline",
    "PipelineError",
    "PipelineResult",
    "PipelineState",
    "PromptTimeoutError",
    "ReplacementNotFoundError",
    "SourceFetchError",
    "SourcePackage",
    "ValidationError",
    "Workspace",
    "default_configuration",
]
