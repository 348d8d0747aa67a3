"""
Time Bucketing.

Maps UTC timestamps onto local calendar dates in one fixed time zone and
builds gap-free day/week/month timelines. Weeks start on Monday and are
labelled with the ISO week of their Thursday; months are labelled
``YYYY-MM``. Aggregation merges rows into the pre-built buckets so periods
without posts still appear.

Version: time_bucketing_v1
"""

from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, Optional, TypeVar
from zoneinfo import ZoneInfo

from socialpulse.config import get_settings
from socialpulse.models.enums import TrendGranularity
from socialpulse.models.windows import TrendBucket
from socialpulse.utils.clock import ensure_utc

T = TypeVar("T")
V = TypeVar("V")

AUTO_DAY_MAX_DAYS = 90
AUTO_WEEK_MAX_DAYS = 365


def select_granularity(requested: TrendGranularity, window_days: int) -> TrendGranularity:
    """Explicit granularity wins; auto picks day up to 90 days, week up to 365, else month."""
    if requested != TrendGranularity.AUTO:
        return requested
    if window_days > AUTO_WEEK_MAX_DAYS:
        return TrendGranularity.MONTH
    if window_days > AUTO_DAY_MAX_DAYS:
        return TrendGranularity.WEEK
    return TrendGranularity.DAY


def _add_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


class TimeBucketer:
    """
    Local-calendar bucketing in a single time zone.

    Attributes:
        tz: Zone in which calendar days are evaluated

    Example:
        >>> bucketer = TimeBucketer()
        >>> buckets = bucketer.timeline(window.start, window.end, TrendGranularity.WEEK)
        >>> series = bucketer.merge(buckets, rows, lambda r: r.published_at, GroupTotals.add, GroupTotals)
    """

    def __init__(self, tz: Optional[ZoneInfo] = None):
        self.tz = tz or get_settings().tz

    def local_date(self, value: datetime) -> date:
        return ensure_utc(value).astimezone(self.tz).date()

    def local_weekday(self, value: datetime) -> int:
        """ISO weekday of the local date, Monday=1 .. Sunday=7."""
        return self.local_date(value).isoweekday()

    def local_month(self, value: datetime) -> int:
        return self.local_date(value).month

    def boundary_at(self, day: date) -> datetime:
        """UTC instant of local midnight starting ``day``."""
        return datetime.combine(day, time(), tzinfo=self.tz).astimezone(timezone.utc)

    def bucket_start(self, day: date, granularity: TrendGranularity) -> date:
        if granularity == TrendGranularity.WEEK:
            return day - timedelta(days=day.weekday())
        if granularity == TrendGranularity.MONTH:
            return day.replace(day=1)
        return day

    def bucket_end(self, start: date, granularity: TrendGranularity) -> date:
        """Exclusive local end date of the bucket beginning at ``start``."""
        if granularity == TrendGranularity.WEEK:
            return start + timedelta(days=7)
        if granularity == TrendGranularity.MONTH:
            return _add_months(start, 1)
        return start + timedelta(days=1)

    def label(self, start: date, granularity: TrendGranularity) -> str:
        if granularity == TrendGranularity.WEEK:
            iso_year, iso_week, _ = (start + timedelta(days=3)).isocalendar()
            return f"{iso_year}-W{iso_week:02d}"
        if granularity == TrendGranularity.MONTH:
            return f"{start.year:04d}-{start.month:02d}"
        return start.isoformat()

    def bucket_for(self, value: datetime, granularity: TrendGranularity) -> TrendBucket:
        start = self.bucket_start(self.local_date(value), granularity)
        return self._bucket(start, granularity)

    def timeline(
        self, start: datetime, end: datetime, granularity: TrendGranularity
    ) -> list[TrendBucket]:
        """
        Contiguous buckets covering every local period that intersects ``[start, end)``.

        Each bucket's ``end_date`` equals the next bucket's ``start_date``.
        An empty interval yields no buckets.
        """
        if granularity == TrendGranularity.AUTO:
            raise ValueError("timeline requires a concrete granularity")
        start = ensure_utc(start)
        end = ensure_utc(end)
        if end <= start:
            return []

        last_day = self.local_date(end - timedelta(microseconds=1))
        cursor = self.bucket_start(self.local_date(start), granularity)
        buckets: list[TrendBucket] = []
        while cursor <= last_day:
            buckets.append(self._bucket(cursor, granularity))
            cursor = self.bucket_end(cursor, granularity)
        return buckets

    def merge(
        self,
        buckets: list[TrendBucket],
        items: Iterable[T],
        timestamp: Callable[[T], datetime],
        fold: Callable[[V, T], None],
        factory: Callable[[], V],
    ) -> "OrderedDict[str, V]":
        """
        Fold items into pre-built buckets keyed by label.

        Every bucket gets an accumulator from ``factory`` even when no item
        falls into it; items outside the timeline are ignored.
        """
        granularity = buckets[0].granularity if buckets else TrendGranularity.DAY
        merged: "OrderedDict[str, V]" = OrderedDict((b.label, factory()) for b in buckets)
        for item in items:
            label = self.label(
                self.bucket_start(self.local_date(timestamp(item)), granularity), granularity
            )
            if label in merged:
                fold(merged[label], item)
        return merged

    def _bucket(self, start: date, granularity: TrendGranularity) -> TrendBucket:
        return TrendBucket(
            granularity=granularity,
            label=self.label(start, granularity),
            start_date=start,
            end_date=self.bucket_end(start, granularity),
            boundary_at=self.boundary_at(start),
        )
