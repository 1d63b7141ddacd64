"""
Exceptions - Centralized error taxonomy.

Every failure that can end a synchronization pass is one of a closed set of
kinds. The kind is decided where the failure is first observed (HTTP client,
local store) and is never re-derived from message text further up.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Stable error kinds surfaced to callers."""

    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    CANCELLED = "cancelled"
    CORRUPTION = "corruption"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration"


class SyncError(Exception):
    """Base exception for all issue mirror errors."""

    kind: ErrorKind = ErrorKind.TRANSIENT
    retryable: bool = False

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class AuthenticationError(SyncError):
    """Credential rejected (401, or 403 that is not a rate limit)."""

    kind = ErrorKind.AUTHENTICATION


class NotFoundError(SyncError):
    """Repository (or issue) does not exist or is not visible."""

    kind = ErrorKind.NOT_FOUND


class TransientError(SyncError):
    """Network blip, timeout, 5xx or other failure worth retrying."""

    kind = ErrorKind.TRANSIENT
    retryable = True

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, cause)
        self.status_code = status_code


class RateLimitError(TransientError):
    """The API asked us to slow down."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        cause: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, cause=cause, status_code=status_code)
        self.retry_after = retry_after


class CancelledError(SyncError):
    """The caller cancelled the operation."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Operation cancelled", cause: Optional[Exception] = None):
        super().__init__(message, cause)


class StorageError(SyncError):
    """Local store write or read failed; treated as transient."""

    kind = ErrorKind.TRANSIENT


class StorageCorruptionError(StorageError):
    """The local database is unreadable. Fatal."""

    kind = ErrorKind.CORRUPTION


class SyncInProgressError(SyncError):
    """Another pass already holds this repository."""

    kind = ErrorKind.CONFLICT


class ConfigurationError(SyncError):
    """Configuration is missing or invalid."""

    kind = ErrorKind.CONFIGURATION


__all__ = [
    "ErrorKind",
    "SyncError",
    "AuthenticationError",
    "NotFoundError",
    "TransientError",
    "RateLimitError",
    "CancelledError",
    "StorageError",
    "StorageCorruptionError",
    "SyncInProgressError",
    "ConfigurationError",
]
