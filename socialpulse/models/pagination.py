"""
Cursor and page models.

Cursors are never persisted; they travel to the caller as opaque base64url
tokens (see ``socialpulse.engine.pagination``).
"""

from typing import Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import SortMode

T = TypeVar("T")


class OffsetCursor(BaseModel):
    """Legacy cursor: number of rows to skip."""

    model_config = ConfigDict(frozen=True)

    offset: int = Field(ge=0)


class KeysetCursor(BaseModel):
    """
    Version 2 keyset cursor: sort-key tuple of the last row served.

    ``primary`` is a number for exposure/engagement sorts and an ISO
    timestamp for the published-time sort; ``secondary`` is always the ISO
    published timestamp; ``id`` is the post id tie-break.
    """

    model_config = ConfigDict(frozen=True)

    version: Literal[2] = 2
    sort: SortMode
    primary: Union[float, str]
    secondary: str
    id: str


Cursor = Union[OffsetCursor, KeysetCursor]


class Page(BaseModel, Generic[T]):
    """One page of a forward scan."""

    items: list[T]
    limit: int
    has_next: bool
    next_cursor: Optional[str] = None
