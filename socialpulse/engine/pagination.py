"""
Pagination Engine.

Cursors are base64url (unpadded) JSON tokens in one of two shapes:

- legacy offset: ``{"offset": 40}``
- keyset v2: ``{"version": 2, "sort": "...", "primary": ..., "secondary": "...", "id": "..."}``

Keyset order is the strictly descending tuple ``(primary, secondary, id)``:

- ``published_at_desc``: (published_at DESC, published_at DESC, post_id DESC)
- ``exposure_desc``: (exposure DESC, published_at DESC, post_id DESC)
- ``engagement_desc``: (engagement DESC, published_at DESC, post_id DESC)

``post_id`` is a total tie-break, so a forward scan never repeats or skips a
row regardless of page size. ``has_next`` comes from fetching ``limit + 1``
rows. A cursor that does not decode, or that was issued for another sort, is
a validation error; it never resets the scan to the first page.

Version: pagination_v2
"""

import base64
import binascii
import json
import math
from datetime import datetime
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar, Union

import structlog
from pydantic import ValidationError

from socialpulse.errors import InvalidRequestError
from socialpulse.models.enums import SortMode
from socialpulse.models.metrics import MetricRow
from socialpulse.models.pagination import Cursor, KeysetCursor, OffsetCursor, Page
from socialpulse.utils.clock import ensure_utc

logger = structlog.get_logger()

T = TypeVar("T")
R = TypeVar("R", bound=MetricRow)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
MAX_ACCOUNT_PAGE_SIZE = 500

SortKey = tuple[Union[float, datetime], datetime, str]


def clamp_page_size(
    limit: Optional[int], maximum: int = MAX_PAGE_SIZE, default: int = DEFAULT_PAGE_SIZE
) -> int:
    """Clamp a requested page size to ``[1, maximum]``."""
    if limit is None:
        limit = default
    return min(maximum, max(1, int(limit)))


# =============================================================================
# Token codec
# =============================================================================


def encode_cursor(cursor: Cursor) -> str:
    """Serialize a cursor to an opaque base64url token."""
    if isinstance(cursor, OffsetCursor):
        payload: dict[str, Any] = {"offset": cursor.offset}
    else:
        payload = {
            "version": cursor.version,
            "sort": cursor.sort.value,
            "primary": cursor.primary,
            "secondary": cursor.secondary,
            "id": cursor.id,
        }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_cursor(token: Optional[str]) -> Optional[Cursor]:
    """
    Decode a token into a cursor; an empty token means "first page".

    Raises:
        InvalidRequestError: the token is not a well-formed cursor
    """
    if token is None or not token.strip():
        return None
    token = token.strip()
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidRequestError("Invalid cursor") from e

    if not isinstance(payload, dict):
        raise InvalidRequestError("Invalid cursor")

    if "version" not in payload:
        offset = payload.get("offset")
        if isinstance(offset, bool) or not isinstance(offset, (int, float)):
            raise InvalidRequestError("Invalid cursor")
        if not math.isfinite(offset) or offset < 0:
            raise InvalidRequestError("Invalid cursor")
        return OffsetCursor(offset=int(math.floor(offset)))

    try:
        cursor = KeysetCursor.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequestError("Invalid cursor") from e
    cursor_key(cursor)
    return cursor


def decode_keyset_cursor(token: Optional[str], sort: SortMode) -> Optional[Cursor]:
    """
    Decode a post-listing cursor for ``sort``.

    Legacy offset cursors are still accepted; keyset cursors must carry the
    same sort they are used with.
    """
    cursor = decode_cursor(token)
    if isinstance(cursor, KeysetCursor) and cursor.sort != sort:
        raise InvalidRequestError(
            "Cursor does not match requested sort",
            details={"cursor_sort": cursor.sort.value, "sort": sort.value},
        )
    return cursor


def decode_offset(token: Optional[str]) -> int:
    """Decode a cursor for an offset-only listing (runs, comments, account rankings)."""
    cursor = decode_cursor(token)
    if cursor is None:
        return 0
    if not isinstance(cursor, OffsetCursor):
        raise InvalidRequestError("Keyset cursor not supported for this listing")
    return cursor.offset


# =============================================================================
# Sort keys
# =============================================================================


def sort_key(row: MetricRow, sort: SortMode) -> SortKey:
    """Full comparator tuple for ``row`` under ``sort`` (compared descending)."""
    published = ensure_utc(row.published_at)
    if sort == SortMode.EXPOSURE_DESC:
        return (float(row.exposure), published, row.post_id)
    if sort == SortMode.ENGAGEMENT_DESC:
        return (float(row.engagement), published, row.post_id)
    return (published, published, row.post_id)


def cursor_for(row: MetricRow, sort: SortMode) -> KeysetCursor:
    """Keyset cursor positioned on ``row``."""
    primary, secondary, row_id = sort_key(row, sort)
    return KeysetCursor(
        sort=sort,
        primary=primary.isoformat() if isinstance(primary, datetime) else primary,
        secondary=secondary.isoformat(),
        id=row_id,
    )


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise InvalidRequestError("Invalid cursor")
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError as e:
        raise InvalidRequestError("Invalid cursor") from e


def cursor_key(cursor: KeysetCursor) -> SortKey:
    """Comparator tuple encoded in a keyset cursor."""
    secondary = _parse_timestamp(cursor.secondary)
    if cursor.sort == SortMode.PUBLISHED_AT_DESC:
        return (_parse_timestamp(cursor.primary), secondary, cursor.id)
    if isinstance(cursor.primary, str) or not math.isfinite(cursor.primary):
        raise InvalidRequestError("Invalid cursor")
    return (float(cursor.primary), secondary, cursor.id)


def comes_after(row: MetricRow, cursor: KeysetCursor) -> bool:
    """True when ``row`` sorts strictly after the cursor position in descending order."""
    return sort_key(row, cursor.sort) < cursor_key(cursor)


# =============================================================================
# Pages and scans
# =============================================================================


def build_page(
    fetched: Sequence[T],
    limit: int,
    next_cursor: Callable[[T], Optional[Cursor]],
) -> Page[T]:
    """
    Truncate a ``limit + 1`` fetch into a page.

    ``next_cursor`` receives the last row kept on the page.
    """
    has_next = len(fetched) > limit
    items = list(fetched[:limit])
    token = None
    if has_next and items:
        cursor = next_cursor(items[-1])
        token = encode_cursor(cursor) if cursor is not None else None
    return Page(items=items, limit=limit, has_next=has_next, next_cursor=token)


def paginate_keyset(
    rows: Sequence[R], sort: SortMode, limit: int, cursor: Optional[Cursor] = None
) -> Page[R]:
    """
    In-memory keyset page over ``rows``.

    Rows are ordered by the full sort tuple descending; a legacy offset
    cursor skips that many rows of the ordered set. Subsequent cursors are
    always keyset v2.
    """
    ordered = sorted(rows, key=lambda row: sort_key(row, sort), reverse=True)
    if isinstance(cursor, KeysetCursor):
        ordered = [row for row in ordered if comes_after(row, cursor)]
    elif isinstance(cursor, OffsetCursor):
        ordered = ordered[cursor.offset:]
    return build_page(ordered[: limit + 1], limit, lambda row: cursor_for(row, sort))


def paginate_offset(items: Sequence[T], limit: int, offset: int) -> Page[T]:
    """Offset page over an already-ordered sequence."""
    window = items[offset : offset + limit + 1]
    return build_page(window, limit, lambda _row: OffsetCursor(offset=offset + limit))


class KeysetScanner:
    """
    Bounded forward scan over a keyset-paged source.

    Pulls batches sequentially through ``fetch(after, limit)`` until the
    source is exhausted or ``max_rows`` have been yielded.

    Example:
        >>> scanner = KeysetScanner(batch_size=5000, max_rows=100_000)
        >>> rows = list(scanner.scan(lambda after, n: storage.fetch_metric_rows(..., after=after, limit=n)))
    """

    def __init__(self, batch_size: int, max_rows: int, sort: SortMode = SortMode.PUBLISHED_AT_DESC):
        self.batch_size = max(1, batch_size)
        self.max_rows = max(1, max_rows)
        self.sort = sort

    def scan(self, fetch: Callable[[Optional[KeysetCursor], int], list[R]]) -> Iterator[R]:
        after: Optional[KeysetCursor] = None
        served = 0
        batches = 0
        while served < self.max_rows:
            want = min(self.batch_size, self.max_rows - served)
            batch = fetch(after, want)
            batches += 1
            for row in batch[:want]:
                yield row
            served += min(len(batch), want)
            if len(batch) < want:
                break
            after = cursor_for(batch[want - 1], self.sort)
        if served >= self.max_rows:
            logger.warning("keyset_scan_capped", max_rows=self.max_rows, batches=batches)
