"""Dashboard configuration singleton and its audited patch."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from socialpulse.utils.clock import ensure_utc, utc_now


class DashboardSetting(BaseModel):
    """
    Process-wide dashboard configuration.

    Attributes:
        focus_account: Account highlighted in SOV KPIs; None selects the top contributor
        target_quarterly_sov_pp: Quarterly SOV gain target in percentage points
        target_shs: Social health score target
        risk_threshold: riesgoActivo at or above which an alert fires
        sentiment_drop_threshold: Drop in sentimientoNeto that fires an alert
        er_drop_threshold: Drop in erGlobal that fires an alert
        alert_cooldown_minutes: Cooldown applied to raised alert incidents
    """

    focus_account: Optional[str] = None
    target_quarterly_sov_pp: float = 5.0
    target_shs: float = 70.0
    risk_threshold: float = 60.0
    sentiment_drop_threshold: float = 10.0
    er_drop_threshold: float = 5.0
    alert_cooldown_minutes: int = 60
    metadata: dict[str, Any] = Field(default_factory=dict)
    updated_by_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("focus_account")
    @classmethod
    def blank_focus_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("created_at", "updated_at")
    @classmethod
    def timestamps_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def editable_fields(self) -> dict[str, Any]:
        return self.model_dump(
            include={
                "focus_account",
                "target_quarterly_sov_pp",
                "target_shs",
                "risk_threshold",
                "sentiment_drop_threshold",
                "er_drop_threshold",
                "alert_cooldown_minutes",
                "metadata",
            }
        )


class SettingsPatch(BaseModel):
    """Partial settings update; fields left unset are not touched."""

    focus_account: Optional[str] = None
    target_quarterly_sov_pp: Optional[float] = None
    target_shs: Optional[float] = None
    risk_threshold: Optional[float] = None
    sentiment_drop_threshold: Optional[float] = None
    er_drop_threshold: Optional[float] = None
    alert_cooldown_minutes: Optional[float] = None
    metadata: Optional[dict[str, Any]] = None
