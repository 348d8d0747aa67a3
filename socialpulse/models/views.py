"""
Dashboard response records.

All ratio fields are percentages already rounded to two decimals. Every
list documents the tuple it is sorted by.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from .enums import (
    BreakdownDimension,
    Channel,
    DatePreset,
    HeatmapMetric,
    IncidentSeverity,
    IncidentStatus,
    ReconciliationStatus,
    RunStatus,
    ScatterDimension,
    TrendGranularity,
)
from .reconciliation import Coverage, ReconciliationSnapshot
from .settings import DashboardSetting
from .sync import SyncRun
from .windows import ComparisonWindow


class Kpis(BaseModel):
    """Headline KPIs for a set of rows."""

    posts: int = 0
    exposure_total: float = 0.0
    engagement_total: float = 0.0
    impressions_total: float = 0.0
    reach_total: float = 0.0
    clicks_total: float = 0.0
    likes_total: float = 0.0
    comments_total: float = 0.0
    shares_total: float = 0.0
    views_total: float = 0.0
    er_global: float = 0.0
    er_impressions: float = 0.0
    er_reach: float = 0.0
    ctr: float = 0.0
    view_rate: float = 0.0
    likes_share: float = 0.0
    comments_share: float = 0.0
    shares_share: float = 0.0
    classified_items: int = 0
    positive: int = 0
    negative: int = 0
    neutral: int = 0
    unknown: int = 0
    sentimiento_neto: float = 0.0
    riesgo_activo: float = 0.0
    shs: float = 0.0
    focus_account: Optional[str] = None
    focus_sov: float = 0.0


class KpiDelta(BaseModel):
    """Current minus previous for the headline KPIs."""

    posts: int = 0
    exposure_total: float = 0.0
    engagement_total: float = 0.0
    er_global: float = 0.0
    sentimiento_neto: float = 0.0
    riesgo_activo: float = 0.0
    shs: float = 0.0
    focus_sov: float = 0.0


class TrendPoint(BaseModel):
    """One bucket of the gap-free trend series."""

    label: str
    bucket_start: date
    bucket_end: date
    boundary_at: datetime
    posts: int
    exposure_total: float
    engagement_total: float
    er_global: float
    classified_items: int
    sentimiento_neto: float
    riesgo_activo: float
    shs: float


class ChannelSummary(BaseModel):
    channel: Channel
    posts: int
    exposure_total: float
    engagement_total: float
    er_global: float
    sentimiento_neto: float
    riesgo_activo: float
    sov: float


class AccountSummary(BaseModel):
    account_name: str
    channel_mix: list[Channel]
    posts: int
    exposure_total: float
    engagement_total: float
    er_global: float
    sentimiento_neto: float
    riesgo_activo: float
    sov: float


class ChannelErProgress(BaseModel):
    channel: Channel
    current_er: float
    target_er: float
    progress_pct: float
    gap: float


class TargetProgress(BaseModel):
    target_quarterly_sov_pp: float
    sov_delta_pp: float
    quarterly_sov_progress_pct: float
    target_shs: float
    shs_progress_pct: float
    shs_gap: float
    er_by_channel: list[ChannelErProgress] = Field(default_factory=list)


class Diagnostics(BaseModel):
    insufficient_data: bool
    classified_items: int
    unclassified_items: int
    unknown_sentiment_items: int
    last_run_status: Optional[RunStatus] = None
    processed_objects: int = 0
    anomalous_object_keys: int = 0
    rows_pending_classification: int = 0


class Overview(BaseModel):
    """
    Main dashboard record.

    ``by_channel`` is sorted by (exposure_total DESC, posts DESC, channel ASC);
    ``by_account`` by (sov DESC, exposure_total DESC, account_name ASC).
    """

    generated_at: datetime
    last_etl_at: Optional[datetime] = None
    preset: DatePreset
    window_start: datetime
    window_end: datetime
    window_days: int
    granularity: TrendGranularity
    comparison: ComparisonWindow
    kpis: Kpis
    previous_period: Kpis
    delta_vs_previous: KpiDelta
    target_progress: TargetProgress
    trend: list[TrendPoint]
    by_channel: list[ChannelSummary]
    by_account: list[AccountSummary]
    diagnostics: Diagnostics
    coverage: Coverage
    reconciliation_status: ReconciliationStatus
    settings: DashboardSetting


class AccountRanking(BaseModel):
    account_name: str
    channel_mix: list[Channel]
    posts: int
    exposure_total: float
    engagement_total: float
    er_ponderado: float
    sentimiento_neto: float
    riesgo_activo: float
    sov: float
    delta_exposure: float
    delta_engagement: float
    delta_er: float
    meets_threshold: bool


class AccountsView(BaseModel):
    """Account ranking sorted by (er_ponderado DESC, exposure_total DESC, account_name ASC)."""

    generated_at: datetime
    last_etl_at: Optional[datetime] = None
    preset: DatePreset
    window_start: datetime
    window_end: datetime
    min_posts: int
    min_exposure: float
    items: list[AccountRanking]
    limit: int
    has_next: bool
    next_cursor: Optional[str] = None


class SentimentTrendPoint(BaseModel):
    day: date
    classified_items: int
    positive: int
    negative: int
    neutral: int
    sentimiento_neto: float
    riesgo_activo: float


class RiskGroup(BaseModel):
    key: str
    classified_items: int
    negative: int
    riesgo_activo: float


class AlertSummary(BaseModel):
    incident_id: str
    severity: IncidentSeverity
    status: IncidentStatus
    risk_score: float
    classified_items: int
    updated_at: datetime
    cooldown_until: Optional[datetime] = None


class RiskView(BaseModel):
    """Risk record; groups sorted by (riesgo_activo DESC, negative DESC, key ASC)."""

    generated_at: datetime
    last_etl_at: Optional[datetime] = None
    preset: DatePreset
    window_start: datetime
    window_end: datetime
    sentiment_trend: list[SentimentTrendPoint]
    by_channel: list[RiskGroup]
    by_account: list[RiskGroup]
    alerts: list[AlertSummary]


class HeatmapCell(BaseModel):
    month: int = Field(ge=1, le=12)
    weekday: int = Field(ge=1, le=7, description="ISO weekday, Monday=1")
    posts: int
    value: float


class HeatmapView(BaseModel):
    generated_at: datetime
    metric: HeatmapMetric
    window_start: datetime
    window_end: datetime
    cells: list[HeatmapCell]


class LabelStats(BaseModel):
    label: str
    posts: int
    exposure_total: float
    engagement_total: float
    er_global: float


class ScatterView(BaseModel):
    """Sorted by (exposure_total DESC, posts DESC, label ASC), top 200."""

    generated_at: datetime
    dimension: ScatterDimension
    items: list[LabelStats]


class ErBreakdownView(BaseModel):
    """Sorted by (er_global DESC, posts DESC, label ASC), top 100."""

    generated_at: datetime
    dimension: BreakdownDimension
    items: list[LabelStats]


class EtlQualityView(BaseModel):
    generated_at: datetime
    latest_run: Optional[SyncRun] = None
    coverage: Coverage
    reconciliation_status: ReconciliationStatus
    reconciliation_by_channel: list[ReconciliationSnapshot]
    runs: list[SyncRun]
