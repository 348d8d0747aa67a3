"""Identifier validation helpers."""

from typing import Optional
from uuid import UUID

from socialpulse.errors import InvalidRequestError


def require_uuid(value: Optional[str], field: str) -> str:
    """Return the canonical UUID string or raise a validation error naming ``field``."""
    try:
        return str(UUID(str(value or "").strip()))
    except ValueError as e:
        raise InvalidRequestError(f"{field} must be a UUID", details={"field": field}) from e
