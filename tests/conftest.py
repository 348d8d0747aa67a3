"""
Pytest configuration and shared fixtures for the SocialPulse test suite.

Provides model factories, a controllable clock and in-memory DuckDB storage
shared by the unit, property and integration suites.
"""

import os
import tempfile
import uuid as _uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import pytest

# Set testing environment BEFORE importing socialpulse (settings are cached)
_test_db_path = os.path.join(tempfile.gettempdir(), f"socialpulse_test_{_uuid.uuid4().hex[:8]}.duckdb")
os.environ["TESTING"] = "true"
os.environ["DB_PATH"] = _test_db_path
os.environ["LOCAL_TIMEZONE"] = "America/Bogota"


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------

from socialpulse.models.enums import Channel, RunStatus, Sentiment, TriggerType
from socialpulse.models.metrics import DashboardFilters, MetricRow, PostInput
from socialpulse.models.sync import SyncRun
from socialpulse.storage.duckdb_storage import DuckDBStorage

# Wednesday 2025-06-18 10:00 in America/Bogota
NOW = datetime(2025, 6, 18, 15, 0, tzinfo=timezone.utc)

ACTOR_ID = "5f0c6a8e-2b1d-4c3e-9a7f-1d2e3f4a5b6c"


def make_metric_row(
    channel: Channel = Channel.FACEBOOK,
    account_name: str = "marca",
    sentiment: Sentiment = Sentiment.POSITIVE,
    published_at: Optional[datetime] = None,
    **overrides,
) -> MetricRow:
    """Factory function for creating test MetricRow objects."""
    defaults = dict(
        post_id=str(uuid4()),
        channel=channel,
        account_name=account_name,
        exposure=1000.0,
        engagement=50.0,
        impressions=1200.0,
        reach=900.0,
        clicks=10.0,
        likes=30.0,
        comments=15.0,
        shares=5.0,
        views=400.0,
        source_score=0.8,
        sentiment=sentiment,
        published_at=published_at or NOW - timedelta(days=1),
    )
    defaults.update(overrides)
    return MetricRow(**defaults)


def make_post(
    channel: Channel = Channel.FACEBOOK,
    account_name: str = "marca",
    sentiment: Optional[str] = "positivo",
    published_at: Optional[datetime] = None,
    **overrides,
) -> PostInput:
    """Factory function for creating test PostInput payloads."""
    defaults = dict(
        channel=channel,
        account_name=account_name,
        external_post_id=f"ext-{uuid4().hex[:12]}",
        post_url="https://social.example/p/1",
        post_type="image",
        title="Nueva cobertura para clientes #cobertura",
        text="Ampliamos servicio en toda la ciudad #hogar",
        published_at=published_at or NOW - timedelta(days=1),
        exposure=1000.0,
        engagement=50.0,
        impressions=1200.0,
        reach=900.0,
        clicks=10.0,
        likes=30.0,
        comments=15.0,
        shares=5.0,
        views=400.0,
        source_score=0.8,
        sentiment=sentiment,
        campaign_key="lanzamiento",
        strategy_keys=["awareness"],
        topics=["servicio"],
    )
    defaults.update(overrides)
    return PostInput(**defaults)


def make_sync_run(
    status: RunStatus = RunStatus.QUEUED,
    trigger_type: TriggerType = TriggerType.MANUAL,
    **overrides,
) -> SyncRun:
    """Factory function for creating test SyncRun objects."""
    defaults = dict(
        run_id=str(uuid4()),
        trigger_type=trigger_type,
        status=status,
        queued_at=NOW,
        created_at=NOW,
    )
    defaults.update(overrides)
    return SyncRun(**defaults)


def make_sentiment_mix(positive: int, negative: int, neutral: int, **overrides) -> list[MetricRow]:
    """Rows with the given sentiment counts and otherwise identical metrics."""
    sentiments = (
        [Sentiment.POSITIVE] * positive
        + [Sentiment.NEGATIVE] * negative
        + [Sentiment.NEUTRAL] * neutral
    )
    return [make_metric_row(sentiment=s, **overrides) for s in sentiments]


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    """Clock pinned to NOW."""
    return FixedClock()


@pytest.fixture
def storage():
    """Fresh in-memory DuckDB storage with the extended schema."""
    backend = DuckDBStorage(db_path=":memory:", enable_extended_schema=True)
    yield backend
    backend.close()


@pytest.fixture
def base_storage():
    """In-memory DuckDB storage without the hashtag/topic tables."""
    backend = DuckDBStorage(db_path=":memory:", enable_extended_schema=False)
    yield backend
    backend.close()


@pytest.fixture
def filters_7d():
    return DashboardFilters(preset="7d")


@pytest.fixture
def actor_id():
    return ACTOR_ID
