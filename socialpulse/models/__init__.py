"""
Pydantic v2 data models for the social analytics engine.

Model Organization:
    - enums: Fixed wire enumerations (channels, presets, phases, severities, ...)
    - metrics: MetricRow, PostRecord, comments and dashboard filters
    - windows: Resolved windows and trend buckets
    - pagination: Cursor shapes and pages
    - sync: Sync runs with fixed phase board and typed counters
    - incidents: Risk incidents, signals and outcomes
    - settings: Dashboard configuration singleton and patch
    - targets: ER KPI targets
    - reconciliation: Source/store reconciliation snapshots and coverage
    - audit: Audit log entries
    - views: Dashboard response records
"""

from .audit import AuditEntry
from .enums import (
    BreakdownDimension,
    Channel,
    ComparisonMode,
    DatePreset,
    HeatmapMetric,
    IncidentMode,
    IncidentSeverity,
    IncidentStatus,
    PhaseState,
    ReconciliationStatus,
    RunStatus,
    ScatterDimension,
    Sentiment,
    SentimentSource,
    SortMode,
    SyncPhase,
    TargetSource,
    TrendGranularity,
    TriggerType,
    UpsertStatus,
)
from .incidents import Incident, IncidentOutcome, IncidentSignal
from .metrics import (
    CommentFilters,
    CommentInput,
    CommentOverride,
    CommentOverridePatch,
    CommentRecord,
    DashboardFilters,
    MetricRow,
    PostInput,
    PostRecord,
)
from .pagination import KeysetCursor, OffsetCursor, Page
from .reconciliation import ChannelRowStats, Coverage, ReconciliationSnapshot
from .settings import DashboardSetting, SettingsPatch
from .sync import PhaseBoard, PhaseSnapshot, RunCounters, SyncRun
from .targets import ErTargetInput, ErTargetItem, ErTargetsView, KpiTarget
from .windows import ComparisonWindow, ResolvedWindow, TrendBucket

__all__ = [
    "AuditEntry",
    "BreakdownDimension",
    "Channel",
    "ChannelRowStats",
    "CommentFilters",
    "CommentInput",
    "CommentOverride",
    "CommentOverridePatch",
    "CommentRecord",
    "ComparisonMode",
    "ComparisonWindow",
    "Coverage",
    "DashboardFilters",
    "DashboardSetting",
    "DatePreset",
    "ErTargetInput",
    "ErTargetItem",
    "ErTargetsView",
    "HeatmapMetric",
    "Incident",
    "IncidentMode",
    "IncidentOutcome",
    "IncidentSeverity",
    "IncidentSignal",
    "IncidentStatus",
    "KeysetCursor",
    "KpiTarget",
    "MetricRow",
    "OffsetCursor",
    "Page",
    "PhaseBoard",
    "PhaseSnapshot",
    "PhaseState",
    "PostInput",
    "PostRecord",
    "ReconciliationSnapshot",
    "ReconciliationStatus",
    "ResolvedWindow",
    "RunCounters",
    "RunStatus",
    "ScatterDimension",
    "Sentiment",
    "SentimentSource",
    "SettingsPatch",
    "SortMode",
    "SyncPhase",
    "SyncRun",
    "TargetSource",
    "TrendBucket",
    "TrendGranularity",
    "TriggerType",
    "UpsertStatus",
]
