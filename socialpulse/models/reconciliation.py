"""Reconciliation and data coverage models."""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from socialpulse.utils.clock import ensure_utc, utc_now

from .enums import Channel, ReconciliationStatus


class ChannelRowStats(BaseModel):
    """Row count and date range for one channel from one side of the comparison."""

    channel: Channel
    rows: int = Field(default=0, ge=0)
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None

    @field_validator("min_date", "max_date")
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class ReconciliationSnapshot(BaseModel):
    """Per (run, channel) comparison of source rows against stored rows."""

    snapshot_id: str = Field(default_factory=lambda: str(uuid4()))
    run_id: str
    channel: Channel
    source_rows: int = 0
    store_rows: int = 0
    delta_rows: int = 0
    source_min_date: Optional[datetime] = None
    source_max_date: Optional[datetime] = None
    store_min_date: Optional[datetime] = None
    store_max_date: Optional[datetime] = None
    status: ReconciliationStatus = ReconciliationStatus.UNKNOWN
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator(
        "source_min_date", "source_max_date", "store_min_date", "store_max_date", "created_at"
    )
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class Coverage(BaseModel):
    """Date span covered by stored posts and by the latest source snapshots."""

    store_min_date: Optional[datetime] = None
    store_max_date: Optional[datetime] = None
    source_min_date: Optional[datetime] = None
    source_max_date: Optional[datetime] = None

    @field_validator("store_min_date", "store_max_date", "source_min_date", "source_max_date")
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
