"""
Social analytics engine core components.

This package turns classified post metric rows into dashboard views and
tracks the state behind them:

- Window resolution: presets and explicit ranges to UTC intervals plus comparison windows
- Metric aggregation: sums, ER variants, sentiment, risk, SHS and share of voice
- Time bucketing: local-calendar day/week/month timelines without gaps
- Pagination: legacy offset and keyset v2 cursors, bounded keyset scans
- Sync runs: ETL run and phase state machine
- Incidents: risk signal escalation with cooldown and SLA
- ER targets: auto-computed yearly targets with manual overrides
- Reconciliation: source/store row-count comparison and overall status
- Dashboard: concurrent view assembly and audited mutations
"""

__version__ = "0.1.0"

__all__ = [
    "CommentService",
    "DashboardService",
    "DashboardSettingsManager",
    "ErTargetService",
    "IncidentEscalator",
    "MetricAggregator",
    "Reconciler",
    "SocialAlertEvaluator",
    "SyncRunTracker",
    "TimeBucketer",
    "WindowResolver",
    "parse_filters",
]

from socialpulse.engine.aggregator import MetricAggregator
from socialpulse.engine.alerts import SocialAlertEvaluator
from socialpulse.engine.bucketing import TimeBucketer
from socialpulse.engine.comments import CommentService
from socialpulse.engine.dashboard import DashboardService, parse_filters
from socialpulse.engine.dashboard_settings import DashboardSettingsManager
from socialpulse.engine.er_targets import ErTargetService
from socialpulse.engine.incidents import IncidentEscalator
from socialpulse.engine.reconciliation import Reconciler
from socialpulse.engine.sync_run import SyncRunTracker
from socialpulse.engine.windows import WindowResolver
