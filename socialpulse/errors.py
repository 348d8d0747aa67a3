"""
Typed error hierarchy for the social analytics engine.

Every failure surfaced to a caller carries a machine-readable ``kind`` so the
(out-of-process) API layer can map it to a response status without parsing
messages:

- ``validation``: malformed cursor, bad date range, non-UUID actor, unknown enum value
- ``not_found``: referenced run, comment or post is absent
- ``conflict``: a patch that would not change anything

Storage failures are raised as ``StorageError`` and always chain the
underlying driver exception.
"""

from typing import Any, Optional


class SocialPulseError(Exception):
    """Base exception for all engine-level failures."""

    kind: str = "internal"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an error response body."""
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequestError(SocialPulseError):
    """Caller supplied input the engine cannot act on."""

    kind = "validation"


class NotFoundError(SocialPulseError):
    """A referenced entity does not exist."""

    kind = "not_found"


class ConflictError(SocialPulseError):
    """The requested change conflicts with current state."""

    kind = "conflict"


class StorageError(SocialPulseError):
    """Base exception for all storage operation failures."""

    kind = "storage"
