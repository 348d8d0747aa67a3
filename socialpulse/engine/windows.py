"""
Window Resolver.

Turns a dashboard date preset (or explicit range) into an absolute UTC
``[start, end)`` interval and derives the comparison interval used for
deltas. Preset boundaries fall on UTC midnights; local-time alignment
happens later in bucketing.

Version: window_resolver_v1
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import structlog

from socialpulse.config import get_settings
from socialpulse.errors import InvalidRequestError
from socialpulse.models.enums import ComparisonMode, DatePreset
from socialpulse.models.metrics import DashboardFilters
from socialpulse.models.windows import ComparisonWindow, ResolvedWindow
from socialpulse.utils.clock import Clock, ensure_utc, utc_now

logger = structlog.get_logger()

ROLLING_PRESET_DAYS = {
    DatePreset.LAST_7_DAYS: 7,
    DatePreset.LAST_30_DAYS: 30,
    DatePreset.LAST_90_DAYS: 90,
}

CALENDAR_YEAR_PRESETS = {
    DatePreset.Y2024: 2024,
    DatePreset.Y2025: 2025,
}

WINDOW_DAYS_PRESETS = {days: preset for preset, days in ROLLING_PRESET_DAYS.items()}

COMPARISON_LABELS = {
    ComparisonMode.WEEKDAY_ALIGNED_WEEK: "Ultima semana (coincidencia de dias)",
    ComparisonMode.SAME_PERIOD_LAST_YEAR: "Mismo periodo ano pasado",
}


def utc_midnight(day: date) -> datetime:
    return datetime.combine(day, time(), tzinfo=timezone.utc)


def window_days_between(start: datetime, end: datetime) -> int:
    """Whole days in ``[start, end)``, rounded half away from zero, at least 1."""
    seconds = (end - start).total_seconds()
    days = int(seconds / 86400 + (0.5 if seconds >= 0 else -0.5))
    return max(1, days)


def shift_years(value: datetime, years: int) -> datetime:
    """
    Same month/day/time ``years`` away.

    February 29 maps to February 28 when the target year is not a leap year.
    """
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


def infer_preset(filters: DashboardFilters) -> DatePreset:
    """Explicit preset, else custom for explicit bounds, else the window_days shorthand, else all."""
    if filters.preset is not None:
        return filters.preset
    if filters.date_from is not None and filters.date_to is not None:
        return DatePreset.CUSTOM
    if filters.window_days is not None:
        return WINDOW_DAYS_PRESETS[filters.window_days]
    return DatePreset.ALL


class WindowResolver:
    """
    Resolves dashboard windows.

    Attributes:
        epoch: Start of the ``all`` preset
        clock: Source of "now" for open-ended presets

    Example:
        >>> resolver = WindowResolver()
        >>> window = resolver.resolve(DashboardFilters(preset=DatePreset.LAST_30_DAYS))
        >>> comparison = resolver.comparison(window, ComparisonMode.SAME_PERIOD_LAST_YEAR)
    """

    def __init__(self, epoch: Optional[date] = None, clock: Clock = utc_now):
        self.epoch = epoch or get_settings().data_epoch
        self.clock = clock

    def resolve(self, filters: DashboardFilters) -> ResolvedWindow:
        """
        Resolve the current window.

        Raises:
            InvalidRequestError: custom preset without ``from`` or with ``from >= to``
        """
        preset = infer_preset(filters)
        end = ensure_utc(filters.date_to) if filters.date_to else self.clock()

        if preset == DatePreset.CUSTOM:
            if filters.date_from is None:
                raise InvalidRequestError("Custom preset requires from and to")
            start = ensure_utc(filters.date_from)
            if start >= end:
                raise InvalidRequestError(
                    "from must be before to",
                    details={"from": start.isoformat(), "to": end.isoformat()},
                )
            return self._window(preset, start, end)

        if preset == DatePreset.ALL:
            return self._window(preset, utc_midnight(self.epoch), end)

        if preset in CALENDAR_YEAR_PRESETS:
            year = CALENDAR_YEAR_PRESETS[preset]
            return self._window(preset, utc_midnight(date(year, 1, 1)), utc_midnight(date(year + 1, 1, 1)))

        if preset == DatePreset.YTD:
            return self._window(preset, utc_midnight(date(end.year, 1, 1)), end)

        if preset == DatePreset.LAST_QUARTER:
            quarter = (end.month - 1) // 3
            year = end.year
            if quarter == 0:
                quarter, year = 4, year - 1
            first_month = (quarter - 1) * 3 + 1
            start = utc_midnight(date(year, first_month, 1))
            if first_month == 10:
                finish = utc_midnight(date(year + 1, 1, 1))
            else:
                finish = utc_midnight(date(year, first_month + 3, 1))
            return self._window(preset, start, finish)

        days = ROLLING_PRESET_DAYS[preset]
        return self._window(preset, end - timedelta(days=days), end)

    def comparison(
        self,
        window: ResolvedWindow,
        mode: ComparisonMode = ComparisonMode.SAME_PERIOD_LAST_YEAR,
        comparison_days: Optional[int] = None,
    ) -> ComparisonWindow:
        """
        Derive the comparison window.

        - ``exact_days``: the N days immediately before the window; N is required
        - ``weekday_aligned_week``: both bounds shifted back 7 days
        - ``same_period_last_year``: both bounds shifted back one calendar year

        Raises:
            InvalidRequestError: ``exact_days`` without a positive day count
        """
        if mode == ComparisonMode.EXACT_DAYS:
            if comparison_days is None or comparison_days < 1:
                raise InvalidRequestError("exact_days comparison requires comparison_days >= 1")
            days = int(comparison_days)
            return ComparisonWindow(
                mode=mode,
                start=window.start - timedelta(days=days),
                end=window.start,
                label=f"{days} dias exactos",
            )

        if mode == ComparisonMode.WEEKDAY_ALIGNED_WEEK:
            return ComparisonWindow(
                mode=mode,
                start=window.start - timedelta(days=7),
                end=window.end - timedelta(days=7),
                label=COMPARISON_LABELS[mode],
            )

        return ComparisonWindow(
            mode=ComparisonMode.SAME_PERIOD_LAST_YEAR,
            start=shift_years(window.start, -1),
            end=shift_years(window.end, -1),
            label=COMPARISON_LABELS[ComparisonMode.SAME_PERIOD_LAST_YEAR],
        )

    def resolve_with_comparison(
        self, filters: DashboardFilters
    ) -> tuple[ResolvedWindow, ComparisonWindow]:
        window = self.resolve(filters)
        comparison = self.comparison(window, filters.comparison_mode, filters.comparison_days)
        logger.debug(
            "window_resolved",
            preset=window.preset.value,
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            comparison_mode=comparison.mode.value,
        )
        return window, comparison

    def _window(self, preset: DatePreset, start: datetime, end: datetime) -> ResolvedWindow:
        return ResolvedWindow(
            preset=preset, start=start, end=end, window_days=window_days_between(start, end)
        )
