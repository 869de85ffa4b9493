"""Domain-specific errors for btrecover."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from btrecover.core.model import AttemptOutcome


class BtRecoverError(Exception):
    """Base error for btrecover."""


class ProfileValidationError(BtRecoverError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(BtRecoverError):
    """Raised when loading profile sources fails."""


class BackendError(BtRecoverError):
    """Raised when an OS query or mutation cannot be carried out."""


class BackendUnavailableError(BackendError):
    """Raised when the OS tooling (PowerShell) is missing entirely."""


class BackendTimeoutError(BackendError):
    """Raised when a bounded OS call exceeds its deadline and is killed."""


class PreconditionError(BtRecoverError):
    """Raised when recovery cannot start, e.g. the process is not elevated."""


class RecoveryExhaustedError(BtRecoverError):
    """Raised when every recovery attempt failed."""

    def __init__(self, message: str, outcomes: tuple[AttemptOutcome, ...] = ()) -> None:
        super().__init__(message)
        self.outcomes = outcomes


class DeviceNotFoundError(RecoveryExhaustedError):
    """Raised when the target device was absent on every attempt."""
