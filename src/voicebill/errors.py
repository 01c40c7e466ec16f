"""
Exception taxonomy.

Exceptions are used inside the core only. Public service methods catch them
and return typed results carrying an ErrorKind, so callers can render partial
outcomes instead of handling faults.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """User-facing failure categories carried on result objects."""

    NOT_AUTHENTICATED = "not_authenticated"
    NOT_FOUND = "not_found"
    AMBIGUOUS_MATCH = "ambiguous_match"
    INVALID_CONVERSION = "invalid_conversion"
    PERSISTENCE_FAILURE = "persistence_failure"
    UNSUPPORTED = "unsupported"


class VoicebillError(Exception):
    """Base class for all voicebill errors."""

    pass


class NotAuthenticatedError(VoicebillError):
    """Raised when no owner id is available for a tenant-scoped operation."""

    pass


class PersistenceError(VoicebillError):
    """Raised by the storage layer when a read or write fails."""

    pass


class IntentParseError(VoicebillError, ValueError):
    """Raised when an upstream payload cannot be mapped to an intent variant."""

    pass


def require_owner(owner_id: str | None) -> str:
    """Return the owner id or raise NotAuthenticatedError.

    Called before any read so that no query runs without a tenant boundary.
    """
    if not owner_id or not str(owner_id).strip():
        raise NotAuthenticatedError("Not authenticated")
    return str(owner_id)
