"""Engagement-rate KPI target models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from socialpulse.utils.clock import ensure_utc, utc_now

from .enums import Channel, TargetSource


class KpiTarget(BaseModel):
    """Stored ER target for one (year, channel); upserted, one row per key."""

    year: int
    channel: Channel
    baseline_er: float = 0.0
    momentum: float = 0.0
    auto_growth_pct: float = 0.0
    target_er: float = 0.0
    source: TargetSource = TargetSource.AUTO
    override_reason: Optional[str] = None
    updated_by_user_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("updated_at")
    @classmethod
    def timestamps_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ErTargetInput(BaseModel):
    """One channel entry of an ER target upsert request."""

    channel: Channel
    source: TargetSource = TargetSource.AUTO
    target_er: Optional[float] = None
    override_reason: Optional[str] = Field(default=None, max_length=500)


class ErTargetItem(BaseModel):
    """Computed target view for one channel."""

    channel: Channel
    baseline_er: float
    momentum: float
    auto_growth_pct: float
    auto_target_er: float
    target_er: float
    current_er: float
    progress_pct: float
    gap: float
    source: TargetSource
    override_reason: Optional[str] = None


class ErTargetsView(BaseModel):
    """ER targets for all channels of a year."""

    year: int
    baseline_year: int
    items: list[ErTargetItem]
