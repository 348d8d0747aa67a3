"""
Post, metric-row and comment models.

MetricRow is the immutable per-post snapshot the aggregator consumes.
PostRecord extends it with identity, text and taxonomy tags. Both are produced
by the storage collaborator; the engine never mutates them.
"""

import re
from datetime import datetime
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from socialpulse.utils.clock import ensure_utc, utc_now

from .enums import (
    Channel,
    ComparisonMode,
    DatePreset,
    Sentiment,
    SentimentSource,
    TrendGranularity,
)

HASHTAG_PATTERN = re.compile(r"#([A-Za-z0-9_]+)")
MAX_HASHTAGS = 20


def extract_hashtags(text: Optional[str]) -> list[str]:
    """
    Extract unique lowercase hashtags from free text.

    Tags shorter than two characters are dropped, order of first appearance
    is kept, and at most 20 are returned.
    """
    seen: list[str] = []
    for match in HASHTAG_PATTERN.findall(text or ""):
        tag = match.lower().strip("_")
        if len(tag) < 2 or tag in seen:
            continue
        seen.append(tag)
        if len(seen) >= MAX_HASHTAGS:
            break
    return seen


class MetricRow(BaseModel):
    """
    Per-post metric snapshot for one fetch.

    Attributes:
        post_id: Stable store identifier, used as the final keyset tie-break
        channel: Social network the post belongs to
        account_name: Publishing account
        exposure: Audience reached (provider-normalized)
        engagement: Total interactions
        source_score: Source-quality score in [0, 1] used for share of voice
        sentiment: Normalized sentiment bucket
        published_at: Publication time (falls back to creation time upstream)
    """

    model_config = ConfigDict(frozen=True)

    post_id: str
    channel: Channel
    account_name: str
    exposure: float = 0.0
    engagement: float = 0.0
    impressions: float = 0.0
    reach: float = 0.0
    clicks: float = 0.0
    likes: float = 0.0
    comments: float = 0.0
    shares: float = 0.0
    views: float = 0.0
    source_score: float = Field(default=0.5, description="Source quality in [0, 1]")
    sentiment: Sentiment = Sentiment.UNKNOWN
    published_at: datetime

    @field_validator("sentiment", mode="before")
    @classmethod
    def normalize_sentiment(cls, v):
        if isinstance(v, Sentiment):
            return v
        return Sentiment.normalize(v)

    @field_validator("published_at")
    @classmethod
    def published_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class PostRecord(MetricRow):
    """A monitored post: metric snapshot plus identity, text and tags."""

    content_id: Optional[str] = None
    external_post_id: str
    post_url: str = ""
    post_type: Optional[str] = None
    title: str = ""
    text: Optional[str] = None
    campaign_key: Optional[str] = None
    strategy_keys: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    comment_count: int = 0
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def timestamps_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def to_metric_row(self) -> MetricRow:
        return MetricRow.model_validate(self.model_dump(include=set(MetricRow.model_fields)))


class PostInput(BaseModel):
    """Ingestion payload for an idempotent post upsert keyed on (channel, external_post_id)."""

    channel: Channel
    account_name: str = Field(min_length=1)
    external_post_id: str = Field(min_length=1)
    content_id: Optional[str] = None
    post_url: str = ""
    post_type: Optional[str] = None
    title: str = ""
    text: Optional[str] = None
    published_at: Optional[datetime] = None
    exposure: float = Field(default=0.0, ge=0)
    engagement: float = Field(default=0.0, ge=0)
    impressions: float = Field(default=0.0, ge=0)
    reach: float = Field(default=0.0, ge=0)
    clicks: float = Field(default=0.0, ge=0)
    likes: float = Field(default=0.0, ge=0)
    comments: float = Field(default=0.0, ge=0)
    shares: float = Field(default=0.0, ge=0)
    views: float = Field(default=0.0, ge=0)
    source_score: float = Field(default=0.5, ge=0, le=1)
    sentiment: Optional[str] = None
    campaign_key: Optional[str] = None
    strategy_keys: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)

    @field_validator("published_at")
    @classmethod
    def published_at_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class CommentRecord(BaseModel):
    """A comment (mention) attached to a monitored post."""

    comment_id: str = Field(default_factory=lambda: str(uuid4()))
    post_id: str
    external_comment_id: str
    author_name: Optional[str] = None
    text: str = ""
    sentiment: Sentiment = Sentiment.UNKNOWN
    sentiment_source: SentimentSource = SentimentSource.PROVIDER
    is_spam: bool = False
    related_to_post_text: bool = True
    published_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("sentiment", mode="before")
    @classmethod
    def normalize_sentiment(cls, v):
        if isinstance(v, Sentiment):
            return v
        return Sentiment.normalize(v)

    @field_validator("published_at", "created_at", "updated_at")
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class CommentInput(BaseModel):
    """Ingestion payload for an idempotent comment upsert keyed on the external mention id."""

    post_id: str
    external_comment_id: str = Field(min_length=1)
    author_name: Optional[str] = None
    text: str = ""
    sentiment: Optional[str] = None
    published_at: Optional[datetime] = None

    @field_validator("published_at")
    @classmethod
    def published_at_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class CommentFilters(BaseModel):
    """Optional filters for a post's comment listing."""

    sentiment: Optional[Sentiment] = None
    is_spam: Optional[bool] = None
    related_to_post_text: Optional[bool] = None


class CommentOverridePatch(BaseModel):
    """Manual moderation patch for a single comment; unset fields are left alone."""

    is_spam: Optional[bool] = None
    related_to_post_text: Optional[bool] = None
    sentiment: Optional[Sentiment] = None
    reason: Optional[str] = Field(default=None, max_length=500)

    @property
    def is_empty(self) -> bool:
        return self.is_spam is None and self.related_to_post_text is None and self.sentiment is None


class DashboardFilters(BaseModel):
    """
    Filters shared by every dashboard view.

    ``date_from``/``date_to`` accept the ``from``/``to`` wire names. An absent
    preset is inferred: explicit bounds mean ``custom``, ``window_days`` maps
    to ``7d``/``30d``/``90d``, otherwise ``all``.
    """

    model_config = ConfigDict(populate_by_name=True)

    preset: Optional[DatePreset] = None
    date_from: Optional[datetime] = Field(default=None, alias="from")
    date_to: Optional[datetime] = Field(default=None, alias="to")
    window_days: Optional[Literal[7, 30, 90]] = None
    channels: list[Channel] = Field(default_factory=list)
    accounts: list[str] = Field(default_factory=list)
    post_types: list[str] = Field(default_factory=list)
    campaigns: list[str] = Field(default_factory=list)
    strategies: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    sentiment: Optional[Sentiment] = None
    trend_granularity: TrendGranularity = TrendGranularity.AUTO
    comparison_mode: ComparisonMode = ComparisonMode.SAME_PERIOD_LAST_YEAR
    comparison_days: Optional[int] = Field(default=None, ge=1, le=3650)

    @field_validator("date_from", "date_to")
    @classmethod
    def bounds_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator("hashtags")
    @classmethod
    def normalize_hashtags(cls, v: list[str]) -> list[str]:
        cleaned = [tag.strip().lstrip("#").lower() for tag in v]
        return [tag for tag in cleaned if tag]

    @field_validator("accounts", "post_types", "campaigns", "strategies", "topics")
    @classmethod
    def strip_blank(cls, v: list[str]) -> list[str]:
        return [item.strip() for item in v if item and item.strip()]


class CommentOverride(BaseModel):
    """Stored record of one manual moderation of a comment."""

    override_id: str = Field(default_factory=lambda: str(uuid4()))
    comment_id: str
    actor_user_id: str
    is_spam: Optional[bool] = None
    related_to_post_text: Optional[bool] = None
    sentiment: Optional[Sentiment] = None
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
