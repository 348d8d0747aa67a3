"""
Sync run models.

A SyncRun tracks one ETL execution. Phase status is a fixed record with one
slot per SyncPhase and run metrics are a typed counter set, so a run can never
carry an unknown phase or an unknown counter.
"""

from datetime import datetime
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from socialpulse.utils.clock import ensure_utc, utc_now

from .enums import PhaseState, RunStatus, SyncPhase, TriggerType


class PhaseSnapshot(BaseModel):
    """State of a single phase within a run."""

    state: PhaseState = PhaseState.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    details: dict[str, Any] = Field(default_factory=dict)

    @field_validator("started_at", "finished_at")
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class PhaseBoard(BaseModel):
    """Fixed-size phase status record indexed by SyncPhase."""

    model_config = ConfigDict(extra="forbid")

    ingest: PhaseSnapshot = Field(default_factory=PhaseSnapshot)
    classify: PhaseSnapshot = Field(default_factory=PhaseSnapshot)
    aggregate: PhaseSnapshot = Field(default_factory=PhaseSnapshot)
    reconcile: PhaseSnapshot = Field(default_factory=PhaseSnapshot)
    alerts: PhaseSnapshot = Field(default_factory=PhaseSnapshot)

    def get(self, phase: SyncPhase) -> PhaseSnapshot:
        return getattr(self, phase.value)

    def set(self, phase: SyncPhase, snapshot: PhaseSnapshot) -> None:
        setattr(self, phase.value, snapshot)

    def items(self) -> list[tuple[SyncPhase, PhaseSnapshot]]:
        """Phases in nominal order with their snapshots."""
        return [(phase, self.get(phase)) for phase in SyncPhase]


class RunCounters(BaseModel):
    """
    Typed ETL counters accumulated over a run.

    Unknown counter names are rejected. ``merge`` replaces only the counters a
    caller explicitly supplied and keeps every other value.
    """

    model_config = ConfigDict(extra="forbid")

    objects_discovered: int = Field(default=0, ge=0)
    objects_processed: int = Field(default=0, ge=0)
    objects_skipped: int = Field(default=0, ge=0)
    objects_classification_queued: int = Field(default=0, ge=0)
    rows_parsed: int = Field(default=0, ge=0)
    rows_persisted: int = Field(default=0, ge=0)
    rows_classified: int = Field(default=0, ge=0)
    rows_pending_classification: int = Field(default=0, ge=0)
    rows_unknown_sentiment: int = Field(default=0, ge=0)
    rows_aggregated: int = Field(default=0, ge=0)
    malformed_rows: int = Field(default=0, ge=0)
    anomalous_object_keys: int = Field(default=0, ge=0)

    @field_validator("*", mode="before")
    @classmethod
    def floor_numeric(cls, v):
        if isinstance(v, float):
            return int(v // 1)
        return v

    def merge(self, update: Union["RunCounters", dict[str, Any], None]) -> "RunCounters":
        """Return a copy with the explicitly supplied counters replaced."""
        if update is None:
            return self.model_copy()
        if isinstance(update, dict):
            update = RunCounters.model_validate(update)
        changed = {name: getattr(update, name) for name in update.model_fields_set}
        return self.model_copy(update=changed)


class SyncRun(BaseModel):
    """
    One ETL execution.

    Attributes:
        run_id: Unique identifier
        trigger_type: Scheduled or manual trigger
        status: queued, running, completed or failed
        request_id: Correlation id of the request that created the run
        current_phase: Phase most recently updated, cleared on completion
        phases: Per-phase state record
        counters: Accumulated ETL counters
        error_message: Failure reason, bounded in length
    """

    run_id: str = Field(default_factory=lambda: str(uuid4()))
    trigger_type: TriggerType = TriggerType.SCHEDULED
    status: RunStatus = RunStatus.QUEUED
    request_id: Optional[str] = None
    queued_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    current_phase: Optional[SyncPhase] = None
    phases: PhaseBoard = Field(default_factory=PhaseBoard)
    counters: RunCounters = Field(default_factory=RunCounters)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("queued_at", "started_at", "finished_at", "created_at")
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def last_activity_at(self) -> datetime:
        """finished_at when set, otherwise created_at."""
        return self.finished_at or self.created_at
