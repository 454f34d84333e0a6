"""Session guard error types.

All package errors derive from SessionGuardError and carry a machine-readable
ErrorCode plus a human-readable message, so callers can branch on the code
without parsing strings.

Error kinds:
    - StorageUnavailableError: backend unreachable or I/O failure
    - NotConfiguredError: optional collaborator (e.g. GeoIP database) missing
    - InvalidInputError: malformed caller input (bad IP, negative limit)
    - GeoIPLookupError: address could not be resolved by the GeoIP database
    - SessionLimitExceededError / SessionInvalidatedError: raised only by the
      opt-in helpers that turn a decision into an exception

Errors are surfaced to the caller and never retried inside the package.
Retry policy belongs to the caller or the backend client.
"""

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Machine-readable error codes."""

    STORAGE_UNAVAILABLE = "storage_unavailable"
    NOT_CONFIGURED = "not_configured"
    INVALID_INPUT = "invalid_input"
    GEOIP_LOOKUP_FAILED = "geoip_lookup_failed"
    SESSION_LIMIT_EXCEEDED = "session_limit_exceeded"
    SESSION_INVALIDATED = "session_invalidated"


class SessionGuardError(Exception):
    """Base error for the session guard package.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable error message.
        details: Optional context for debugging (IDs, backend name, etc.).
    """

    code: ErrorCode = ErrorCode.STORAGE_UNAVAILABLE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class StorageUnavailableError(SessionGuardError):
    """Session store or invalidation cache failed (connection, I/O, query)."""

    code = ErrorCode.STORAGE_UNAVAILABLE


class NotConfiguredError(SessionGuardError):
    """An optional collaborator was used without being configured.

    Callers can catch this to degrade gracefully, e.g. proceed with an
    IP-only location when no GeoIP database is available.
    """

    code = ErrorCode.NOT_CONFIGURED


class InvalidInputError(SessionGuardError, ValueError):
    """Caller supplied malformed input."""

    code = ErrorCode.INVALID_INPUT


class GeoIPLookupError(SessionGuardError):
    """GeoIP database could not resolve the address."""

    code = ErrorCode.GEOIP_LOOKUP_FAILED


class SessionLimitExceededError(SessionGuardError):
    """Concurrent session limit reached; the new session was not saved."""

    code = ErrorCode.SESSION_LIMIT_EXCEEDED


class SessionInvalidatedError(SessionGuardError):
    """Session was explicitly invalidated."""

    code = ErrorCode.SESSION_INVALIDATED
