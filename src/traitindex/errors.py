"""Error types raised across the registry boundary."""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    MALFORMED_FRAGMENT = "MALFORMED_FRAGMENT"
    ALREADY_ATTACHED = "ALREADY_ATTACHED"
    HOOK_NOT_INSTALLED = "HOOK_NOT_INSTALLED"
    HOOK_ALREADY_INSTALLED = "HOOK_ALREADY_INSTALLED"
    MALFORMED_TRAIT_IMPL = "MALFORMED_TRAIT_IMPL"


class TraitIndexError(Exception):
    """Base error carrying a machine-readable code.

    ``recoverable`` tells the caller whether the registry is still usable
    as-is (True) or whether the error points at a wiring bug (False).
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code.value,
            "message": self.message,
            "suggestion": self.suggestion,
            "recoverable": self.recoverable,
        }


class MalformedFragmentError(TraitIndexError):
    """A submitted fragment does not have the expected structural shape."""

    def __init__(self, message: str, suggestion: str = "") -> None:
        super().__init__(
            ErrorCode.MALFORMED_FRAGMENT,
            message,
            suggestion or "Check the loader output against the fragment wire shape.",
            recoverable=True,
        )


class AlreadyAttachedError(TraitIndexError):
    """A second consumer tried to attach to a registry that already has one."""

    def __init__(self, message: str = "A consumer is already attached to this registry") -> None:
        super().__init__(
            ErrorCode.ALREADY_ATTACHED,
            message,
            "Attach exactly one consumer per registry; use snapshot() for read-only access.",
            recoverable=False,
        )
