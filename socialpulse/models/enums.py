"""
Enumeration types for the social analytics engine.

This module defines all enum types used across the system for type safety
and consistent validation. All enums inherit from str to ensure JSON
serialization compatibility. Values are wire values and must not change.
"""

from enum import Enum
from typing import Optional


class Channel(str, Enum):
    """Social networks monitored by the product."""

    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"
    TIKTOK = "tiktok"


class Sentiment(str, Enum):
    """
    Sentiment bucket assigned by the upstream classifier.

    Only positive, negative and neutral count as classified; ``unknown`` covers
    pending and unrecognized labels.
    """

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    UNKNOWN = "unknown"

    @classmethod
    def normalize(cls, raw: Optional[str]) -> "Sentiment":
        """Map a raw classifier label (English or Spanish) onto a bucket."""
        value = (raw or "").strip().lower()
        if value in ("positive", "positivo"):
            return cls.POSITIVE
        if value in ("negative", "negativo"):
            return cls.NEGATIVE
        if value in ("neutral", "neutro"):
            return cls.NEUTRAL
        return cls.UNKNOWN

    @property
    def is_classified(self) -> bool:
        return self is not Sentiment.UNKNOWN


class SentimentSource(str, Enum):
    """Origin of a comment's sentiment label."""

    PROVIDER = "provider"
    MODEL = "model"
    MANUAL = "manual"


class DatePreset(str, Enum):
    """Named dashboard windows."""

    ALL = "all"
    Y2024 = "y2024"
    Y2025 = "y2025"
    YTD = "ytd"
    LAST_90_DAYS = "90d"
    LAST_30_DAYS = "30d"
    LAST_7_DAYS = "7d"
    LAST_QUARTER = "last_quarter"
    CUSTOM = "custom"


class ComparisonMode(str, Enum):
    """How the comparison (previous) window is derived from the current one."""

    WEEKDAY_ALIGNED_WEEK = "weekday_aligned_week"
    EXACT_DAYS = "exact_days"
    SAME_PERIOD_LAST_YEAR = "same_period_last_year"


class TrendGranularity(str, Enum):
    """Calendar bucket size for trend series."""

    AUTO = "auto"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class SortMode(str, Enum):
    """Post listing orders supported by keyset pagination."""

    PUBLISHED_AT_DESC = "published_at_desc"
    EXPOSURE_DESC = "exposure_desc"
    ENGAGEMENT_DESC = "engagement_desc"


class TriggerType(str, Enum):
    """What started a sync run."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


class RunStatus(str, Enum):
    """Sync run lifecycle: queued -> running -> completed | failed."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class SyncPhase(str, Enum):
    """The five fixed ETL phases, declared in nominal execution order."""

    INGEST = "ingest"
    CLASSIFY = "classify"
    AGGREGATE = "aggregate"
    RECONCILE = "reconcile"
    ALERTS = "alerts"


class PhaseState(str, Enum):
    """Per-phase lifecycle: pending -> running -> completed | failed | skipped."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (PhaseState.COMPLETED, PhaseState.FAILED, PhaseState.SKIPPED)


class IncidentSeverity(str, Enum):
    """Incident severity; SEV1 is the most severe."""

    SEV1 = "SEV1"
    SEV2 = "SEV2"
    SEV3 = "SEV3"
    SEV4 = "SEV4"

    @property
    def rank(self) -> int:
        """Numeric rank where a lower number is more severe."""
        return int(self.value[-1])


class IncidentStatus(str, Enum):
    """Incident lifecycle status."""

    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"

    @classmethod
    def active(cls) -> tuple["IncidentStatus", ...]:
        return (cls.OPEN, cls.ACKNOWLEDGED, cls.IN_PROGRESS)


class IncidentMode(str, Enum):
    """Outcome of raising an incident signal."""

    CREATED = "created"
    ESCALATED = "escalated"
    UPDATED = "updated"
    DEDUPED = "deduped"


class TargetSource(str, Enum):
    """Whether an ER target was computed or entered by a person."""

    AUTO = "auto"
    MANUAL = "manual"


class ReconciliationStatus(str, Enum):
    """Result of comparing source-side and store-side row counts."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"
    UNKNOWN = "unknown"


class HeatmapMetric(str, Enum):
    """Metric plotted on the month x weekday heatmap."""

    ER = "er"
    ENGAGEMENT_TOTAL = "engagement_total"
    LIKES = "likes"
    COMMENTS = "comments"
    SHARES = "shares"
    VIEWS = "views"
    VIEW_RATE = "view_rate"


class ScatterDimension(str, Enum):
    """Grouping label for the exposure/engagement scatter."""

    POST_TYPE = "post_type"
    CHANNEL = "channel"
    ACCOUNT = "account"
    CAMPAIGN = "campaign"
    STRATEGY = "strategy"
    HASHTAG = "hashtag"
    TOPIC = "topic"


class BreakdownDimension(str, Enum):
    """Grouping label for the ER breakdown ranking."""

    HASHTAG = "hashtag"
    WORD = "word"
    POST_TYPE = "post_type"
    PUBLISH_FREQUENCY = "publish_frequency"
    WEEKDAY = "weekday"
    TOPIC = "topic"


class UpsertStatus(str, Enum):
    """Result of an idempotent upsert keyed on an external identifier."""

    CREATED = "created"
    UPDATED = "updated"
