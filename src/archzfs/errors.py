"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across pipeline stages."""

    VALIDATION = "E_VALIDATION"
    IDENTITY = "E_IDENTITY"
    AUTH = "E_AUTH"
    PROMPT_TIMEOUT = "E_PROMPT_TIMEOUT"
    PACKAGE_MANAGER = "E_PACKAGE_MANAGER"
    KEY_RETRIEVAL = "E_KEY_RETRIEVAL"
    SOURCE_FETCH = "E_SOURCE_FETCH"
    PACKAGE_BUILD = "E_PACKAGE_BUILD"
    PATCH = "E_PATCH"
    PATCH_TARGET_MISSING = "E_PATCH_TARGET_MISSING"
    MUTATION = "E_MUTATION"
    REPLACEMENT_NOT_FOUND = "E_REPLACEMENT_NOT_FOUND"
    PERMISSION_ANCHOR_NOT_FOUND = "E_PERMISSION_ANCHOR_NOT_FOUND"
    BUILD = "E_BUILD"
    PIPELINE = "E_PIPELINE"


class ArchzfsError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    @property
    def message(self) -> str:
        return super().__str__()

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class IdentityError(ArchzfsError):
    """Raised when the tool is started with an elevated identity."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.IDENTITY, hint=hint, context=context)


class AuthError(ArchzfsError):
    """Wrong credential or insufficient rights; the two are not distinguishable."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.AUTH, hint=hint, context=context)


class PromptTimeoutError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PROMPT_TIMEOUT, hint=hint, context=context)


class PackageManagerError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PACKAGE_MANAGER, hint=hint, context=context)


class KeyRetrievalError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.KEY_RETRIEVAL, hint=hint, context=context)


class SourceFetchError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.SOURCE_FETCH, hint=hint, context=context)


class PackageBuildError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PACKAGE_BUILD, hint=hint, context=context)


class PatchError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
        code: ErrorCode = ErrorCode.PATCH,
    ) -> None:
        super().__init__(message, code=code, hint=hint, context=context)


class PatchTargetMissingError(PatchError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.PATCH_TARGET_MISSING, hint=hint, context=context
        )


class MutationError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
        code: ErrorCode = ErrorCode.MUTATION,
    ) -> None:
        super().__init__(message, code=code, hint=hint, context=context)


class ReplacementNotFoundError(MutationError):
    """A package-list replacement matched nothing. Logged, never raised."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.REPLACEMENT_NOT_FOUND, hint=hint, context=context
        )


class PermissionAnchorNotFoundError(MutationError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.PERMISSION_ANCHOR_NOT_FOUND, hint=hint, context=context
        )


class BuildError(ArchzfsError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.BUILD, hint=hint, context=context)


class PipelineError(ArchzfsError):
    """Wraps the error that moved the pipeline into its failed state."""

    stage: str
    cause: BaseException

    def __init__(self, *, stage: str, cause: BaseException) -> None:
        code = ErrorCode(cause.code) if isinstance(cause, ArchzfsError) else ErrorCode.PIPELINE
        super().__init__(
            f"Stage `{stage}` failed.",
            code=code,
            context={"stage": stage, "error": type(cause).__name__},
        )
        self.stage = stage
        self.cause = cause


__all__ = [
    "ArchzfsError",
    "AuthError",
    "BuildError",
    "ErrorCode",
    "IdentityError",
    "KeyRetrievalError",
    "MutationError",
    "PackageBuildError",
    "PackageManagerError",
    "PatchError",
    "PatchTargetMissingError",
    "PermissionAnchorNotFoundError",
    "PipelineError",
    "PromptTimeoutError",
    "ReplacementNotFoundError",
    "SourceFetchError",
    "ValidationError",
]
