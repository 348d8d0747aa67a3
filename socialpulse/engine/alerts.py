"""
Social alert evaluation.

Runs as the ``alerts`` phase of a sync run. A 90-day overview is compared
against the dashboard thresholds:

    risk_threshold            riesgoActivo >= riskThreshold
    sentiment_drop_threshold  delta sentimientoNeto <= -sentimentDropThreshold
    er_drop_threshold         delta erGlobal <= -erDropThreshold

Any trigger raises the alert signal through the escalation engine. A drop
trigger floors the severity at SEV3.

Version: social_alert_v1
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from socialpulse.models.enums import DatePreset, IncidentSeverity
from socialpulse.models.incidents import IncidentOutcome, IncidentSignal
from socialpulse.models.metrics import DashboardFilters
from socialpulse.models.views import Overview

from .dashboard import DashboardService
from .incidents import IncidentEscalator

logger = structlog.get_logger()

DROP_SEVERITY_FLOOR = IncidentSeverity.SEV3


@dataclass
class AlertDecision:
    """Result of one evaluation."""

    triggered: bool = False
    reasons: list[str] = field(default_factory=list)
    outcome: Optional[IncidentOutcome] = None

    def as_details(self) -> dict:
        details: dict = {"triggered": self.triggered, "reasons": list(self.reasons)}
        if self.outcome is not None:
            details["incident_mode"] = self.outcome.mode.value
            details["incident_id"] = self.outcome.incident_id
        return details


def alert_reasons(overview: Overview) -> list[str]:
    """Threshold names crossed by an overview, in fixed order."""
    setting = overview.settings
    reasons = []
    if overview.kpis.riesgo_activo >= setting.risk_threshold:
        reasons.append("risk_threshold")
    if overview.delta_vs_previous.sentimiento_neto <= -setting.sentiment_drop_threshold:
        reasons.append("sentiment_drop_threshold")
    if overview.delta_vs_previous.er_global <= -setting.er_drop_threshold:
        reasons.append("er_drop_threshold")
    return reasons


def build_signal(overview: Overview, reasons: list[str], signal_version: str) -> IncidentSignal:
    setting = overview.settings
    dropped = "sentiment_drop_threshold" in reasons or "er_drop_threshold" in reasons
    return IncidentSignal(
        signal_version=signal_version,
        risk_score=overview.kpis.riesgo_activo,
        classified_items=overview.kpis.classified_items,
        severity_floor=DROP_SEVERITY_FLOOR if dropped else None,
        cooldown_minutes=setting.alert_cooldown_minutes,
        payload={
            "formula_version": signal_version,
            "generated_at": overview.generated_at.isoformat(),
            "metrics": overview.kpis.model_dump(mode="json"),
            "delta_vs_previous": overview.delta_vs_previous.model_dump(mode="json"),
            "settings": {
                "risk_threshold": setting.risk_threshold,
                "sentiment_drop_threshold": setting.sentiment_drop_threshold,
                "er_drop_threshold": setting.er_drop_threshold,
            },
            "reasons": reasons,
        },
    )


class SocialAlertEvaluator:
    """
    Evaluates dashboard thresholds and raises the social alert incident.

    Example:
        >>> evaluator = SocialAlertEvaluator(service)
        >>> decision = await evaluator.evaluate()
        >>> decision.reasons
        ['risk_threshold']
    """

    def __init__(self, dashboard: DashboardService, escalator: Optional[IncidentEscalator] = None):
        self.dashboard = dashboard
        self.escalator = escalator or IncidentEscalator(dashboard.storage, dashboard.clock)
        self.signal_version = dashboard.config.alert_signal_version
        self.logger = structlog.get_logger()

    async def evaluate(self, filters: Optional[DashboardFilters] = None) -> AlertDecision:
        overview = await self.dashboard.overview(
            filters or DashboardFilters(preset=DatePreset.LAST_90_DAYS)
        )
        reasons = alert_reasons(overview)
        if not reasons:
            self.logger.info("alerts_evaluated", triggered=False)
            return AlertDecision()

        outcome = self.escalator.raise_signal(build_signal(overview, reasons, self.signal_version))
        self.logger.warning(
            "alerts_evaluated",
            triggered=True,
            reasons=reasons,
            incident_mode=outcome.mode.value,
            incident_id=outcome.incident_id,
        )
        return AlertDecision(triggered=True, reasons=reasons, outcome=outcome)
