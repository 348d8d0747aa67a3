"""
Resolved time-window models.

All bounds are aware UTC datetimes describing half-open ``[start, end)``
intervals.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import ComparisonMode, DatePreset, TrendGranularity


class ResolvedWindow(BaseModel):
    """Absolute interval produced from a preset or explicit range."""

    model_config = ConfigDict(frozen=True)

    preset: DatePreset
    start: datetime
    end: datetime
    window_days: int = Field(ge=1, description="Interval length in whole days (rounded, min 1)")


class ComparisonWindow(BaseModel):
    """Interval the current window is compared against."""

    model_config = ConfigDict(frozen=True)

    mode: ComparisonMode
    start: datetime
    end: datetime
    label: str


class TrendBucket(BaseModel):
    """
    One calendar period of a gap-free timeline.

    ``start_date``/``end_date`` are local calendar dates (end exclusive);
    ``boundary_at`` is the UTC instant of local midnight at the bucket start.
    """

    model_config = ConfigDict(frozen=True)

    granularity: TrendGranularity
    label: str
    start_date: date
    end_date: date
    boundary_at: datetime
