"""
Incident models for risk-signal escalation.

At most one active (open, acknowledged or in_progress) incident exists per
signal version; repeated signals update it instead of creating another.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from socialpulse.utils.clock import ensure_utc, utc_now

from .enums import IncidentMode, IncidentSeverity, IncidentStatus


class Incident(BaseModel):
    """
    A persisted risk incident.

    Attributes:
        incident_id: Unique identifier
        signal_version: Detector identity; scopes deduplication
        severity: SEV1 (most severe) through SEV4
        status: Lifecycle status
        risk_score: Risk score that last raised or refreshed the incident
        classified_items: Classified item count behind the score
        sla_due_at: Deadline derived from severity
        cooldown_until: Re-raises before this instant are deduplicated
        payload: Detector-specific evidence
    """

    incident_id: str = Field(default_factory=lambda: str(uuid4()))
    signal_version: str
    severity: IncidentSeverity
    status: IncidentStatus = IncidentStatus.OPEN
    risk_score: float = 0.0
    classified_items: int = Field(default=0, ge=0)
    sla_due_at: datetime
    cooldown_until: Optional[datetime] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("sla_due_at", "cooldown_until", "created_at", "updated_at")
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def is_active(self) -> bool:
        return self.status in IncidentStatus.active()


class IncidentSignal(BaseModel):
    """A computed risk signal to raise through the escalation engine."""

    signal_version: str = Field(min_length=1)
    risk_score: float
    classified_items: float = 0
    severity_floor: Optional[IncidentSeverity] = None
    cooldown_minutes: float = 60
    payload: dict[str, Any] = Field(default_factory=dict)


class IncidentOutcome(BaseModel):
    """Result of raising a signal."""

    mode: IncidentMode
    incident_id: str
    severity: IncidentSeverity
