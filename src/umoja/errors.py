"""Business-rule error taxonomy.

Every error raised by the core for a recoverable, caller-correctable
condition derives from UmojaError and carries a stable code. Storage
outages are reported separately through StorageError so callers can
tell a collaborator failure apart from a rule violation.
"""

from __future__ import annotations

from typing import Optional


class UmojaError(Exception):
    """Base class for recoverable business-rule failures."""

    code = "UMOJA_ERROR"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def __str__(self) -> str:
        return self.message


class ValidationFailed(UmojaError):
    """Malformed or under-length input."""

    code = "VALIDATION_FAILED"


class NotFound(UmojaError):
    """A referenced record does not exist (or is the wrong kind of record)."""

    code = "NOT_FOUND"


class Forbidden(UmojaError):
    """The caller is not allowed to perform this action."""

    code = "FORBIDDEN"


class InvalidStateTransition(UmojaError):
    """The record is not in the source state the transition requires."""

    code = "INVALID_STATE_TRANSITION"


class Conflict(InvalidStateTransition):
    """A concurrent writer moved the record first.

    Losing a compare-and-swap race is a transition attempted from a
    state the record no longer holds, hence the subclassing.
    """

    code = "CONFLICT"


class StorageError(Exception):
    """The storage collaborator failed. Not a business-rule violation."""
