"""
Incident Escalation Engine.

Raises, deduplicates and escalates risk incidents from computed risk scores.
One active incident (open, acknowledged or in_progress) exists per signal
version. A raise inside the incident's cooldown is deduplicated without any
write; otherwise the incident is created or refreshed, and its stored
severity only ever moves towards SEV1.

Severity bands:
    risk >= 80 -> SEV1, >= 60 -> SEV2, >= 40 -> SEV3, else SEV4

SLA:
    SEV1 30 minutes, SEV2 240 minutes, SEV3/SEV4 1440 minutes

Version: incident_escalation_v1
"""

import math
from datetime import timedelta
from typing import Optional

import structlog

from socialpulse.models.enums import IncidentMode, IncidentSeverity, IncidentStatus
from socialpulse.models.incidents import Incident, IncidentOutcome, IncidentSignal
from socialpulse.storage.base import StorageBackend
from socialpulse.utils.clock import Clock, utc_now

from .formulas import round_metric

logger = structlog.get_logger()

SEVERITY_BANDS = (
    (80.0, IncidentSeverity.SEV1),
    (60.0, IncidentSeverity.SEV2),
    (40.0, IncidentSeverity.SEV3),
)

SLA_MINUTES = {
    IncidentSeverity.SEV1: 30,
    IncidentSeverity.SEV2: 240,
    IncidentSeverity.SEV3: 1440,
    IncidentSeverity.SEV4: 1440,
}


def severity_for_risk(risk_score: float) -> IncidentSeverity:
    for threshold, severity in SEVERITY_BANDS:
        if risk_score >= threshold:
            return severity
    return IncidentSeverity.SEV4


def more_severe(a: IncidentSeverity, b: IncidentSeverity) -> IncidentSeverity:
    """The more severe of two severities (lower rank)."""
    return a if a.rank <= b.rank else b


def apply_floor(
    computed: IncidentSeverity, floor: Optional[IncidentSeverity]
) -> IncidentSeverity:
    """A floor can only raise severity, never lower it."""
    if floor is None:
        return computed
    return more_severe(computed, floor)


def sla_minutes(severity: IncidentSeverity) -> int:
    return SLA_MINUTES[severity]


class IncidentEscalator:
    """
    Raises risk signals as incidents.

    Attributes:
        storage: Storage backend holding incidents
        clock: Source of "now" for cooldown and SLA computation

    Example:
        >>> escalator = IncidentEscalator(storage)
        >>> outcome = escalator.raise_signal(
        ...     IncidentSignal(signal_version="social-alert-v1", risk_score=85, cooldown_minutes=60)
        ... )
        >>> outcome.mode, outcome.severity
        (<IncidentMode.CREATED: 'created'>, <IncidentSeverity.SEV1: 'SEV1'>)
    """

    def __init__(self, storage: StorageBackend, clock: Clock = utc_now):
        self.storage = storage
        self.clock = clock
        self.logger = structlog.get_logger()

    def raise_signal(self, signal: IncidentSignal) -> IncidentOutcome:
        """
        Create, refresh or deduplicate the active incident for the signal version.

        Returns:
            IncidentOutcome with mode created, escalated, updated or deduped
        """
        now = self.clock()
        computed = apply_floor(severity_for_risk(signal.risk_score), signal.severity_floor)
        cooldown_minutes = max(1, int(math.floor(signal.cooldown_minutes)))
        classified_items = max(0, int(math.floor(signal.classified_items)))

        with self.storage.transaction():
            existing = self.storage.find_active_incident(signal.signal_version)

            if existing is not None and existing.cooldown_until and existing.cooldown_until > now:
                self.logger.debug(
                    "incident_deduped",
                    incident_id=existing.incident_id,
                    signal_version=signal.signal_version,
                    cooldown_until=existing.cooldown_until.isoformat(),
                )
                return IncidentOutcome(
                    mode=IncidentMode.DEDUPED,
                    incident_id=existing.incident_id,
                    severity=computed,
                )

            cooldown_until = now + timedelta(minutes=cooldown_minutes)

            if existing is None:
                incident = Incident(
                    signal_version=signal.signal_version,
                    severity=computed,
                    status=IncidentStatus.OPEN,
                    risk_score=round_metric(signal.risk_score),
                    classified_items=classified_items,
                    sla_due_at=now + timedelta(minutes=sla_minutes(computed)),
                    cooldown_until=cooldown_until,
                    payload=signal.payload,
                    created_at=now,
                    updated_at=now,
                )
                self.storage.insert_incident(incident)
                mode = IncidentMode.CREATED
            else:
                severity = more_severe(existing.severity, computed)
                incident = existing.model_copy(
                    update={
                        "severity": severity,
                        "status": (
                            IncidentStatus.OPEN
                            if existing.status == IncidentStatus.DISMISSED
                            else existing.status
                        ),
                        "risk_score": round_metric(signal.risk_score),
                        "classified_items": classified_items,
                        "sla_due_at": now + timedelta(minutes=sla_minutes(severity)),
                        "cooldown_until": cooldown_until,
                        "payload": signal.payload,
                        "updated_at": now,
                    }
                )
                self.storage.update_incident(incident)
                mode = (
                    IncidentMode.ESCALATED
                    if computed.rank < existing.severity.rank
                    else IncidentMode.UPDATED
                )

        self.logger.info(
            "incident_raised",
            incident_id=incident.incident_id,
            mode=mode.value,
            severity=incident.severity.value,
            risk_score=incident.risk_score,
            signal_version=signal.signal_version,
        )
        return IncidentOutcome(mode=mode, incident_id=incident.incident_id, severity=incident.severity)

    def active_incidents(self, signal_version: str, limit: int = 30) -> list[Incident]:
        """Active incidents ordered by (updated_at DESC, incident_id DESC)."""
        return self.storage.list_active_incidents(signal_version, limit=limit)
