"""
Unit tests for the SocialPulse analytics engine.

Covers KPI formulas, the metric aggregator, window resolution, local-calendar
bucketing, cursor pagination, the sync run state machine, incident
escalation, ER targets, reconciliation status, dashboard settings and the
dashboard's labelling helpers.
"""

import base64
import json
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from socialpulse.engine import formulas
from socialpulse.engine.aggregator import GroupTotals, MetricAggregator
from socialpulse.engine.alerts import DROP_SEVERITY_FLOOR, alert_reasons, build_signal
from socialpulse.engine.bucketing import TimeBucketer, select_granularity
from socialpulse.engine.dashboard import (
    channel_mix,
    content_words,
    heatmap_value,
    parse_filters,
    publish_frequency_label,
    scatter_labels,
)
from socialpulse.engine.dashboard_settings import DashboardSettingsManager, normalize_patch
from socialpulse.engine.er_targets import (
    ErTargetCalculator,
    auto_growth_pct,
    momentum_between,
    validate_year,
)
from socialpulse.engine.incidents import (
    IncidentEscalator,
    apply_floor,
    severity_for_risk,
    sla_minutes,
)
from socialpulse.engine.pagination import (
    KeysetScanner,
    clamp_page_size,
    comes_after,
    cursor_for,
    decode_cursor,
    decode_keyset_cursor,
    decode_offset,
    encode_cursor,
    paginate_keyset,
    paginate_offset,
)
from socialpulse.engine.reconciliation import build_snapshot, derive_status
from socialpulse.engine.sync_run import SyncRunStateMachine, SyncRunTracker
from socialpulse.engine.windows import WindowResolver, shift_years
from socialpulse.errors import ConflictError, InvalidRequestError, NotFoundError
from socialpulse.models.enums import (
    Channel,
    ComparisonMode,
    DatePreset,
    HeatmapMetric,
    IncidentMode,
    IncidentSeverity,
    PhaseState,
    ReconciliationStatus,
    RunStatus,
    ScatterDimension,
    Sentiment,
    SortMode,
    SyncPhase,
    TargetSource,
    TrendGranularity,
    TriggerType,
)
from socialpulse.models.incidents import IncidentSignal
from socialpulse.models.metrics import DashboardFilters, PostRecord
from socialpulse.models.pagination import KeysetCursor, OffsetCursor
from socialpulse.models.reconciliation import ChannelRowStats
from socialpulse.models.settings import DashboardSetting, SettingsPatch
from socialpulse.models.sync import RunCounters
from socialpulse.models.targets import KpiTarget
from socialpulse.models.views import KpiDelta, Kpis
from tests.conftest import (
    ACTOR_ID,
    NOW,
    FixedClock,
    make_metric_row,
    make_sentiment_mix,
)

BOGOTA = ZoneInfo("America/Bogota")
UTC = timezone.utc
SIGNAL = "social-alert-v1"


def _token(payload) -> str:
    raw = json.dumps(payload).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


# ============================================================================
# Formula Tests
# ============================================================================


class TestFormulas:
    """Test KPI formulas and rounding."""

    def test_formulas_round_metric_half_up(self):
        """Test that halves round away from zero at two decimals."""
        assert formulas.round_metric(1.005) == 1.01
        assert formulas.round_metric(2.675) == 2.68
        assert formulas.round_metric(-2.345) == -2.35

    def test_formulas_round_metric_non_finite_is_zero(self):
        """Test that NaN and infinities round to 0."""
        assert formulas.round_metric(float("nan")) == 0.0
        assert formulas.round_metric(float("inf")) == 0.0
        assert formulas.round_metric(float("-inf")) == 0.0

    def test_formulas_er_global_floors_denominator(self):
        """Test that zero exposure divides by 1."""
        assert formulas.er_global(50, 0) == 5000.0

    def test_formulas_ctr_denominator_fallback(self):
        """Test that CTR uses impressions, then reach, then exposure."""
        assert formulas.ctr(10, 1000, 500, 200) == pytest.approx(1.0)
        assert formulas.ctr(10, 0, 500, 200) == pytest.approx(2.0)
        assert formulas.ctr(10, 0, 0, 200) == pytest.approx(5.0)

    def test_formulas_interaction_shares_empty_base(self):
        """Test that no interactions give zero shares."""
        assert formulas.interaction_shares(0, 0, 0) == (0.0, 0.0, 0.0)

    def test_formulas_social_health_score_blend(self):
        """Test SHS = 0.5 reputation + 0.25 reach + 0.25 inverse risk."""
        score = formulas.social_health_score(40, 1000, 500, 20)
        assert score == pytest.approx(80.0)

    def test_formulas_social_health_score_reach_capped(self):
        """Test that reach growth contributes at most 100."""
        low = formulas.social_health_score(0, 10_000, 1, 0)
        assert low == pytest.approx(0.5 * 50 + 0.25 * 100 + 0.25 * 100)

    def test_formulas_sov_contribution(self):
        """Test SOV weight 0.6 source + 0.4 relative exposure."""
        assert formulas.sov_contribution(1.0, 500, 1000) == pytest.approx(0.8)
        assert formulas.sov_contribution(2.0, 5000, 1000) == pytest.approx(1.0)

    def test_formulas_progress_pct_floors_target(self):
        """Test that a zero target is floored at 0.001."""
        assert formulas.progress_pct(1.0, 0) == pytest.approx(100_000.0)

    def test_formulas_clamp_nan_returns_low(self):
        """Test that clamping NaN gives the lower bound."""
        assert formulas.clamp(float("nan"), 0, 100) == 0


# ============================================================================
# Metric Aggregator Tests
# ============================================================================


class TestMetricAggregator:
    """Test grouping, sentiment KPIs and share of voice."""

    def test_aggregator_sentiment_mix(self):
        """Test 6 positive / 2 negative / 2 neutral gives net 40 and risk 20."""
        totals = MetricAggregator().totals(make_sentiment_mix(6, 2, 2))
        assert totals.classified == 10
        assert totals.sentimiento_neto == pytest.approx(40.0)
        assert totals.riesgo_activo == pytest.approx(20.0)

    def test_aggregator_unknown_sentiment_not_classified(self):
        """Test that unknown rows are counted but not classified."""
        rows = make_sentiment_mix(1, 1, 0) + [make_metric_row(sentiment=Sentiment.UNKNOWN)]
        totals = MetricAggregator().totals(rows)
        assert totals.posts == 3
        assert totals.classified == 2
        assert totals.unknown == 1

    def test_aggregator_no_classified_items_zero_ratios(self):
        """Test that no classified items yields 0 net sentiment and 0 risk."""
        totals = MetricAggregator().totals([make_metric_row(sentiment=Sentiment.UNKNOWN)])
        assert totals.sentimiento_neto == 0.0
        assert totals.riesgo_activo == 0.0

    def test_aggregator_kpis_rounded(self):
        """Test the KPI record for ten identical rows."""
        aggregator = MetricAggregator()
        totals = aggregator.totals(make_sentiment_mix(6, 2, 2))
        kpis = aggregator.kpis(totals, previous_exposure=10_000.0, focus_account="marca", focus_sov=100)

        assert kpis.posts == 10
        assert kpis.exposure_total == 10_000.0
        assert kpis.er_global == 5.0
        assert kpis.ctr == 0.83
        assert kpis.likes_share == 60.0
        assert kpis.comments_share == 30.0
        assert kpis.shares_share == 10.0
        assert kpis.sentimiento_neto == 40.0
        assert kpis.riesgo_activo == 20.0
        assert kpis.shs == 80.0
        assert kpis.focus_account == "marca"

    def test_aggregator_group_preserves_first_seen_order(self):
        """Test that groups keep first-seen key order."""
        rows = [
            make_metric_row(channel=Channel.TIKTOK),
            make_metric_row(channel=Channel.FACEBOOK),
            make_metric_row(channel=Channel.TIKTOK),
        ]
        groups = MetricAggregator().group(rows, lambda row: row.channel)
        assert list(groups) == [Channel.TIKTOK, Channel.FACEBOOK]
        assert groups[Channel.TIKTOK].posts == 2

    def test_aggregator_group_labels_counts_each_label(self):
        """Test that a row with two labels lands in both groups."""
        rows = [make_metric_row(), make_metric_row()]
        groups = MetricAggregator().group_labels(rows, lambda row: ["a", "b"])
        assert groups["a"].posts == 2
        assert groups["b"].posts == 2

    def test_aggregator_share_of_voice(self):
        """Test SOV percentages and the top contributor."""
        rows = [
            make_metric_row(account_name="marca", exposure=1000, source_score=1.0),
            make_metric_row(account_name="rival", exposure=500, source_score=0.5),
        ]
        sov = MetricAggregator().share_of_voice(rows)
        assert sov.total == pytest.approx(1.5)
        assert sov.account_pct("marca") == pytest.approx(66.6667, abs=1e-3)
        assert sov.top_account() == "marca"
        assert sov.account_pct(None) == 0.0

    def test_aggregator_focus_account_configured_wins(self):
        """Test that a configured focus account overrides the top contributor."""
        rows = [make_metric_row(account_name="marca"), make_metric_row(account_name="rival", exposure=10)]
        sov = MetricAggregator().share_of_voice(rows)
        assert sov.focus_account("rival") == "rival"
        assert sov.focus_account("  ") == "marca"
        assert sov.focus_account(None) == "marca"


# ============================================================================
# Window Resolver Tests
# ============================================================================


class TestWindowResolver:
    """Test preset resolution and comparison windows."""

    def _resolver(self, now: datetime = NOW) -> WindowResolver:
        return WindowResolver(epoch=date(2024, 1, 1), clock=FixedClock(now))

    def test_window_resolve_rolling_7d(self):
        """Test 7d ends now and spans 7 days."""
        window = self._resolver().resolve(DashboardFilters(preset="7d"))
        assert window.end == NOW
        assert window.start == NOW - timedelta(days=7)
        assert window.window_days == 7

    def test_window_resolve_window_days_shorthand(self):
        """Test window_days=30 infers the 30d preset."""
        window = self._resolver().resolve(DashboardFilters(window_days=30))
        assert window.preset == DatePreset.LAST_30_DAYS

    def test_window_resolve_default_is_all(self):
        """Test that no preset and no bounds resolve to all from the epoch."""
        window = self._resolver().resolve(DashboardFilters())
        assert window.preset == DatePreset.ALL
        assert window.start == datetime(2024, 1, 1, tzinfo=UTC)
        assert window.end == NOW

    def test_window_resolve_ytd(self):
        """Test ytd starts at UTC midnight on January 1st."""
        window = self._resolver().resolve(DashboardFilters(preset="ytd"))
        assert window.start == datetime(2025, 1, 1, tzinfo=UTC)
        assert window.end == NOW

    def test_window_resolve_calendar_year(self):
        """Test y2024 covers the leap year exactly."""
        window = self._resolver().resolve(DashboardFilters(preset="y2024"))
        assert window.start == datetime(2024, 1, 1, tzinfo=UTC)
        assert window.end == datetime(2025, 1, 1, tzinfo=UTC)
        assert window.window_days == 366

    def test_window_resolve_last_quarter(self):
        """Test last_quarter in June is Q1."""
        window = self._resolver().resolve(DashboardFilters(preset="last_quarter"))
        assert window.start == datetime(2025, 1, 1, tzinfo=UTC)
        assert window.end == datetime(2025, 4, 1, tzinfo=UTC)

    def test_window_resolve_last_quarter_wraps_year(self):
        """Test last_quarter in February is Q4 of the previous year."""
        resolver = self._resolver(datetime(2025, 2, 10, tzinfo=UTC))
        window = resolver.resolve(DashboardFilters(preset="last_quarter"))
        assert window.start == datetime(2024, 10, 1, tzinfo=UTC)
        assert window.end == datetime(2025, 1, 1, tzinfo=UTC)
        assert window.window_days == 92

    def test_window_resolve_custom(self):
        """Test explicit bounds infer the custom preset."""
        filters = DashboardFilters(**{"from": "2025-03-01T00:00:00Z", "to": "2025-03-15T00:00:00Z"})
        window = self._resolver().resolve(filters)
        assert window.preset == DatePreset.CUSTOM
        assert window.window_days == 14

    def test_window_resolve_custom_inverted_raises(self):
        """Test from >= to is a validation error."""
        filters = DashboardFilters(**{"from": "2025-03-15T00:00:00Z", "to": "2025-03-15T00:00:00Z"})
        with pytest.raises(InvalidRequestError):
            self._resolver().resolve(filters)

    def test_window_comparison_same_period_last_year(self):
        """Test both bounds shift back one year."""
        resolver = self._resolver()
        window = resolver.resolve(DashboardFilters(preset="7d"))
        comparison = resolver.comparison(window, ComparisonMode.SAME_PERIOD_LAST_YEAR)
        assert comparison.start == datetime(2024, 6, 11, 15, tzinfo=UTC)
        assert comparison.end == datetime(2024, 6, 18, 15, tzinfo=UTC)

    def test_window_comparison_weekday_aligned(self):
        """Test both bounds shift back seven days."""
        resolver = self._resolver()
        window = resolver.resolve(DashboardFilters(preset="7d"))
        comparison = resolver.comparison(window, ComparisonMode.WEEKDAY_ALIGNED_WEEK)
        assert comparison.end == window.end - timedelta(days=7)
        assert comparison.start.weekday() == window.start.weekday()

    def test_window_comparison_exact_days(self):
        """Test exact_days ends where the window starts."""
        resolver = self._resolver()
        window = resolver.resolve(DashboardFilters(preset="30d"))
        comparison = resolver.comparison(window, ComparisonMode.EXACT_DAYS, 14)
        assert comparison.end == window.start
        assert comparison.start == window.start - timedelta(days=14)

    def test_window_comparison_exact_days_requires_count(self):
        """Test exact_days without a day count is rejected."""
        resolver = self._resolver()
        window = resolver.resolve(DashboardFilters(preset="30d"))
        with pytest.raises(InvalidRequestError):
            resolver.comparison(window, ComparisonMode.EXACT_DAYS)

    def test_window_shift_years_leap_day(self):
        """Test February 29 maps to February 28 in a non-leap year."""
        shifted = shift_years(datetime(2024, 2, 29, 12, tzinfo=UTC), -1)
        assert shifted == datetime(2023, 2, 28, 12, tzinfo=UTC)


# ============================================================================
# Time Bucketing Tests
# ============================================================================


class TestTimeBucketing:
    """Test local-calendar buckets and gap-free timelines."""

    def test_bucketing_select_granularity_auto(self):
        """Test auto thresholds at 90 and 365 days."""
        assert select_granularity(TrendGranularity.AUTO, 90) == TrendGranularity.DAY
        assert select_granularity(TrendGranularity.AUTO, 91) == TrendGranularity.WEEK
        assert select_granularity(TrendGranularity.AUTO, 365) == TrendGranularity.WEEK
        assert select_granularity(TrendGranularity.AUTO, 366) == TrendGranularity.MONTH
        assert select_granularity(TrendGranularity.MONTH, 7) == TrendGranularity.MONTH

    def test_bucketing_local_date_crosses_midnight(self):
        """Test 03:00 UTC on March 1st is still February 28th in Bogota."""
        bucketer = TimeBucketer(BOGOTA)
        assert bucketer.local_date(datetime(2025, 3, 1, 3, tzinfo=UTC)) == date(2025, 2, 28)

    def test_bucketing_week_label_uses_thursday(self):
        """Test the week starting 2024-12-30 is 2025-W01."""
        bucketer = TimeBucketer(BOGOTA)
        bucket = bucketer.bucket_for(datetime(2025, 1, 1, 12, tzinfo=UTC), TrendGranularity.WEEK)
        assert bucket.start_date == date(2024, 12, 30)
        assert bucket.label == "2025-W01"

    def test_bucketing_boundary_at_local_midnight(self):
        """Test local midnight in Bogota is 05:00 UTC."""
        bucketer = TimeBucketer(BOGOTA)
        assert bucketer.boundary_at(date(2025, 6, 1)) == datetime(2025, 6, 1, 5, tzinfo=UTC)

    def test_bucketing_timeline_daily(self):
        """Test a three-day window yields exactly three daily buckets."""
        bucketer = TimeBucketer(BOGOTA)
        buckets = bucketer.timeline(
            datetime(2025, 6, 1, 5, tzinfo=UTC),
            datetime(2025, 6, 4, 5, tzinfo=UTC),
            TrendGranularity.DAY,
        )
        assert [b.label for b in buckets] == ["2025-06-01", "2025-06-02", "2025-06-03"]

    def test_bucketing_timeline_monthly_contiguous(self):
        """Test month buckets chain end_date to start_date across a year change."""
        bucketer = TimeBucketer(BOGOTA)
        buckets = bucketer.timeline(
            datetime(2024, 11, 15, 12, tzinfo=UTC),
            datetime(2025, 2, 10, 12, tzinfo=UTC),
            TrendGranularity.MONTH,
        )
        assert [b.label for b in buckets] == ["2024-11", "2024-12", "2025-01", "2025-02"]
        for earlier, later in zip(buckets, buckets[1:]):
            assert earlier.end_date == later.start_date

    def test_bucketing_timeline_empty_interval(self):
        """Test an empty interval yields no buckets."""
        assert TimeBucketer(BOGOTA).timeline(NOW, NOW, TrendGranularity.DAY) == []

    def test_bucketing_timeline_auto_raises(self):
        """Test that auto must be resolved before building a timeline."""
        with pytest.raises(ValueError):
            TimeBucketer(BOGOTA).timeline(NOW - timedelta(days=1), NOW, TrendGranularity.AUTO)

    def test_bucketing_merge_zero_fills(self):
        """Test that buckets without rows still appear with empty totals."""
        bucketer = TimeBucketer(BOGOTA)
        buckets = bucketer.timeline(
            datetime(2025, 6, 1, 5, tzinfo=UTC),
            datetime(2025, 6, 4, 5, tzinfo=UTC),
            TrendGranularity.DAY,
        )
        rows = [
            make_metric_row(published_at=datetime(2025, 6, 2, 15, tzinfo=UTC)),
            make_metric_row(published_at=datetime(2025, 7, 2, 15, tzinfo=UTC)),
        ]
        merged = bucketer.merge(buckets, rows, lambda r: r.published_at, GroupTotals.add, GroupTotals)
        assert [totals.posts for totals in merged.values()] == [0, 1, 0]


# ============================================================================
# Pagination Tests
# ============================================================================


class TestPagination:
    """Test cursor codec, keyset ordering and pages."""

    def test_pagination_clamp_page_size(self):
        """Test page size bounds and defaults."""
        assert clamp_page_size(None) == 50
        assert clamp_page_size(0) == 1
        assert clamp_page_size(1000) == 200
        assert clamp_page_size(1000, maximum=500) == 500

    def test_pagination_offset_cursor_round_trip(self):
        """Test an offset cursor survives encoding."""
        assert decode_cursor(encode_cursor(OffsetCursor(offset=40))) == OffsetCursor(offset=40)

    def test_pagination_empty_token_is_first_page(self):
        """Test that missing or blank tokens decode to None."""
        assert decode_cursor(None) is None
        assert decode_cursor("   ") is None
        assert decode_offset(None) == 0

    def test_pagination_garbage_token_raises(self):
        """Test that undecodable tokens are validation errors."""
        with pytest.raises(InvalidRequestError):
            decode_cursor("%%%")

    def test_pagination_non_object_payload_raises(self):
        """Test that a JSON list is not a cursor."""
        with pytest.raises(InvalidRequestError):
            decode_cursor(_token([1, 2]))

    def test_pagination_negative_offset_raises(self):
        """Test that a negative offset is rejected rather than reset."""
        with pytest.raises(InvalidRequestError):
            decode_cursor(_token({"offset": -1}))

    def test_pagination_fractional_offset_floored(self):
        """Test that a fractional offset is floored."""
        assert decode_offset(_token({"offset": 7.9})) == 7

    def test_pagination_keyset_sort_mismatch_raises(self):
        """Test that a cursor issued for another sort is rejected."""
        token = encode_cursor(cursor_for(make_metric_row(), SortMode.EXPOSURE_DESC))
        with pytest.raises(InvalidRequestError):
            decode_keyset_cursor(token, SortMode.ENGAGEMENT_DESC)

    def test_pagination_keyset_cursor_on_offset_listing_raises(self):
        """Test that offset-only listings refuse keyset cursors."""
        token = encode_cursor(cursor_for(make_metric_row(), SortMode.PUBLISHED_AT_DESC))
        with pytest.raises(InvalidRequestError):
            decode_offset(token)

    def test_pagination_published_cursor_uses_iso_primary(self):
        """Test the published sort carries an ISO timestamp as primary."""
        row = make_metric_row()
        cursor = cursor_for(row, SortMode.PUBLISHED_AT_DESC)
        assert cursor.primary == row.published_at.isoformat()
        assert cursor.secondary == row.published_at.isoformat()
        assert cursor.id == row.post_id

    def test_pagination_comes_after_tie_break_on_id(self):
        """Test rows tied on exposure and time are ordered by id descending."""
        published = NOW - timedelta(days=2)
        high = make_metric_row(post_id="b", exposure=100, published_at=published)
        low = make_metric_row(post_id="a", exposure=100, published_at=published)
        cursor = cursor_for(high, SortMode.EXPOSURE_DESC)
        assert comes_after(low, cursor)
        assert not comes_after(high, cursor)

    def test_pagination_keyset_scan_visits_rows_once(self):
        """Test a paged scan over tied exposures never repeats or skips."""
        rows = [
            make_metric_row(post_id=f"p{i}", exposure=exposure, published_at=NOW - timedelta(hours=i % 2))
            for i, exposure in enumerate([300, 200, 200, 100, 100, 100, 50])
        ]
        seen = []
        cursor = None
        while True:
            page = paginate_keyset(rows, SortMode.EXPOSURE_DESC, 2, cursor)
            seen.extend(row.post_id for row in page.items)
            if not page.has_next:
                break
            cursor = decode_keyset_cursor(page.next_cursor, SortMode.EXPOSURE_DESC)
        assert sorted(seen) == sorted(row.post_id for row in rows)
        assert len(seen) == len(set(seen))

    def test_pagination_keyset_accepts_legacy_offset(self):
        """Test a legacy offset cursor skips rows and hands back a keyset cursor."""
        rows = [make_metric_row(exposure=float(e)) for e in (5, 4, 3, 2, 1)]
        page = paginate_keyset(rows, SortMode.EXPOSURE_DESC, 2, OffsetCursor(offset=2))
        assert [row.exposure for row in page.items] == [3.0, 2.0]
        assert isinstance(decode_cursor(page.next_cursor), KeysetCursor)

    def test_pagination_offset_last_page(self):
        """Test the last offset page has no next cursor."""
        page = paginate_offset(list(range(5)), limit=2, offset=4)
        assert page.items == [4]
        assert page.has_next is False
        assert page.next_cursor is None

    def test_pagination_offset_next_cursor(self):
        """Test the next offset cursor advances by the page size."""
        page = paginate_offset(list(range(5)), limit=2, offset=0)
        assert page.has_next is True
        assert decode_offset(page.next_cursor) == 2

    def test_pagination_keyset_scanner_respects_cap(self):
        """Test the scanner stops at max_rows."""
        rows = sorted(
            (make_metric_row(post_id=f"p{i:02d}") for i in range(9)),
            key=lambda r: (r.published_at, r.post_id),
            reverse=True,
        )

        def fetch(after, limit):
            remaining = [r for r in rows if after is None or comes_after(r, after)]
            return remaining[:limit]

        capped = list(KeysetScanner(batch_size=2, max_rows=5).scan(fetch))
        assert [r.post_id for r in capped] == [r.post_id for r in rows[:5]]

        full = list(KeysetScanner(batch_size=4, max_rows=100).scan(fetch))
        assert len(full) == 9


# ============================================================================
# Sync Run State Machine Tests
# ============================================================================


class TestSyncRunStateMachine:
    """Test run and phase transitions."""

    def _machine(self, clock: FixedClock) -> SyncRunStateMachine:
        return SyncRunStateMachine(clock=clock, max_error_length=20)

    def test_sync_run_start_resets_phases(self, clock):
        """Test a started run is running with every phase pending."""
        machine = self._machine(clock)
        run = machine.start(machine.queue(TriggerType.MANUAL))
        assert run.status == RunStatus.RUNNING
        assert run.started_at == NOW
        assert all(snapshot.state == PhaseState.PENDING for _, snapshot in run.phases.items())

    def test_sync_run_start_twice_conflicts(self, clock):
        """Test only queued runs can start."""
        machine = self._machine(clock)
        run = machine.start(machine.queue(TriggerType.MANUAL))
        with pytest.raises(ConflictError):
            machine.start(run)

    def test_sync_run_update_phase_requires_running(self, clock):
        """Test phases cannot move on a queued run."""
        machine = self._machine(clock)
        with pytest.raises(ConflictError):
            machine.update_phase(machine.queue(TriggerType.MANUAL), SyncPhase.INGEST, PhaseState.RUNNING)

    def test_sync_run_update_phase_timestamps(self, clock):
        """Test running stamps started_at and a terminal state stamps finished_at."""
        machine = self._machine(clock)
        run = machine.start(machine.queue(TriggerType.MANUAL))
        run = machine.update_phase(run, SyncPhase.INGEST, PhaseState.RUNNING)
        clock.advance(minutes=5)
        run = machine.update_phase(run, SyncPhase.INGEST, PhaseState.COMPLETED, details={"files": 2})

        ingest = run.phases.get(SyncPhase.INGEST)
        assert ingest.started_at == NOW
        assert ingest.finished_at == NOW + timedelta(minutes=5)
        assert ingest.details == {"files": 2}
        assert run.current_phase == SyncPhase.INGEST

    def test_sync_run_phase_reentry_allowed(self, clock):
        """Test a finished phase can be re-entered while the run is running."""
        machine = self._machine(clock)
        run = machine.start(machine.queue(TriggerType.MANUAL))
        run = machine.update_phase(run, SyncPhase.AGGREGATE, PhaseState.COMPLETED)
        run = machine.update_phase(run, SyncPhase.INGEST, PhaseState.RUNNING)
        run = machine.update_phase(run, SyncPhase.AGGREGATE, PhaseState.RUNNING)
        aggregate = run.phases.get(SyncPhase.AGGREGATE)
        assert aggregate.state == PhaseState.RUNNING
        assert aggregate.finished_at is None

    def test_sync_run_counters_merge_keeps_unspecified(self, clock):
        """Test counter updates replace only the supplied counters."""
        machine = self._machine(clock)
        run = machine.start(machine.queue(TriggerType.MANUAL))
        run = machine.update_phase(run, SyncPhase.INGEST, PhaseState.RUNNING, counters={"rows_parsed": 10})
        run = machine.update_phase(run, SyncPhase.INGEST, PhaseState.COMPLETED, counters={"rows_persisted": 8})
        assert run.counters.rows_parsed == 10
        assert run.counters.rows_persisted == 8

    def test_sync_run_complete_forces_pending_phases(self, clock):
        """Test completion marks every non-terminal phase completed."""
        machine = self._machine(clock)
        run = machine.start(machine.queue(TriggerType.MANUAL))
        run = machine.update_phase(run, SyncPhase.CLASSIFY, PhaseState.SKIPPED)
        run = machine.complete(run)

        assert run.status == RunStatus.COMPLETED
        assert run.current_phase is None
        assert run.finished_at == NOW
        assert run.phases.get(SyncPhase.CLASSIFY).state == PhaseState.SKIPPED
        assert run.phases.get(SyncPhase.ALERTS).state == PhaseState.COMPLETED

    def test_sync_run_terminal_rejects_mutation(self, clock):
        """Test a completed run cannot be completed or failed again."""
        machine = self._machine(clock)
        run = machine.complete(machine.start(machine.queue(TriggerType.MANUAL)))
        with pytest.raises(ConflictError):
            machine.complete(run)
        with pytest.raises(ConflictError):
            machine.fail(run, "late failure")

    def test_sync_run_fail_marks_current_phase(self, clock):
        """Test failure marks the current phase, truncates the error, keeps counters."""
        machine = self._machine(clock)
        run = machine.start(machine.queue(TriggerType.MANUAL))
        run = machine.update_phase(run, SyncPhase.INGEST, PhaseState.RUNNING, counters={"rows_parsed": 5})
        run = machine.fail(run, "x" * 50)

        assert run.status == RunStatus.FAILED
        assert run.phases.get(SyncPhase.INGEST).state == PhaseState.FAILED
        assert run.error_message == "x" * 20
        assert run.counters.rows_parsed == 5

    def test_sync_run_counters_reject_unknown(self):
        """Test unknown counter names are rejected."""
        with pytest.raises(ValidationError):
            RunCounters.model_validate({"rows_teleported": 1})

    def test_sync_run_counters_floor_floats(self):
        """Test fractional counters are floored."""
        merged = RunCounters(rows_parsed=4).merge({"rows_persisted": 3.7})
        assert merged.rows_persisted == 3
        assert merged.rows_parsed == 4


class TestSyncRunTracker:
    """Test persisted run transitions."""

    def test_sync_run_tracker_lifecycle(self, storage, clock):
        """Test start, phase update and completion are persisted."""
        tracker = SyncRunTracker(storage, SyncRunStateMachine(clock=clock))
        run = tracker.start_run(trigger_type=TriggerType.MANUAL)
        tracker.update_phase(run.run_id, SyncPhase.INGEST, PhaseState.COMPLETED, counters={"rows_parsed": 3})
        tracker.complete_run(run.run_id)

        stored = tracker.get_run(run.run_id)
        assert stored.status == RunStatus.COMPLETED
        assert stored.counters.rows_parsed == 3
        assert stored.phases.get(SyncPhase.INGEST).state == PhaseState.COMPLETED

    def test_sync_run_tracker_start_queued(self, storage, clock):
        """Test a queued run can be started by id."""
        tracker = SyncRunTracker(storage, SyncRunStateMachine(clock=clock))
        queued = tracker.queue_run(TriggerType.SCHEDULED)
        started = tracker.start_run(queued.run_id)
        assert started.run_id == queued.run_id
        assert tracker.get_run(queued.run_id).status == RunStatus.RUNNING

    def test_sync_run_tracker_missing_run(self, storage):
        """Test unknown run ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            SyncRunTracker(storage).get_run("00000000-0000-0000-0000-000000000000")

    def test_sync_run_tracker_list_runs_paged(self, storage, clock):
        """Test runs are listed newest first with offset cursors."""
        tracker = SyncRunTracker(storage, SyncRunStateMachine(clock=clock))
        ids = []
        for _ in range(3):
            ids.append(tracker.queue_run().run_id)
            clock.advance(minutes=1)

        first = tracker.list_runs(limit=2)
        assert [run.run_id for run in first.items] == [ids[2], ids[1]]
        assert first.has_next is True

        second = tracker.list_runs(limit=2, cursor=first.next_cursor)
        assert [run.run_id for run in second.items] == [ids[0]]
        assert second.has_next is False


# ============================================================================
# Incident Escalation Tests
# ============================================================================


class TestIncidentSeverity:
    """Test severity bands, floors and SLA."""

    def test_incident_severity_bands(self):
        """Test the 80/60/40 thresholds."""
        assert severity_for_risk(85) == IncidentSeverity.SEV1
        assert severity_for_risk(80) == IncidentSeverity.SEV1
        assert severity_for_risk(60) == IncidentSeverity.SEV2
        assert severity_for_risk(59.99) == IncidentSeverity.SEV3
        assert severity_for_risk(39.9) == IncidentSeverity.SEV4

    def test_incident_floor_only_raises(self):
        """Test a floor raises low severities and leaves high ones alone."""
        assert apply_floor(IncidentSeverity.SEV4, IncidentSeverity.SEV3) == IncidentSeverity.SEV3
        assert apply_floor(IncidentSeverity.SEV1, IncidentSeverity.SEV3) == IncidentSeverity.SEV1
        assert apply_floor(IncidentSeverity.SEV2, None) == IncidentSeverity.SEV2

    def test_incident_sla_minutes(self):
        """Test SLA per severity."""
        assert sla_minutes(IncidentSeverity.SEV1) == 30
        assert sla_minutes(IncidentSeverity.SEV2) == 240
        assert sla_minutes(IncidentSeverity.SEV4) == 1440


class TestIncidentEscalator:
    """Test raising, deduplicating and escalating incidents."""

    def _signal(self, risk_score: float, **overrides) -> IncidentSignal:
        defaults = dict(signal_version=SIGNAL, risk_score=risk_score, classified_items=12, cooldown_minutes=60)
        defaults.update(overrides)
        return IncidentSignal(**defaults)

    def test_incident_raise_creates(self, storage, clock):
        """Test risk 85 opens a SEV1 incident with a 30 minute SLA."""
        outcome = IncidentEscalator(storage, clock).raise_signal(self._signal(85))
        assert outcome.mode == IncidentMode.CREATED
        assert outcome.severity == IncidentSeverity.SEV1

        stored = storage.find_active_incident(SIGNAL)
        assert stored.incident_id == outcome.incident_id
        assert stored.sla_due_at == NOW + timedelta(minutes=30)
        assert stored.cooldown_until == NOW + timedelta(minutes=60)
        assert stored.classified_items == 12

    def test_incident_raise_within_cooldown_dedupes(self, storage, clock):
        """Test a second raise inside the cooldown writes nothing."""
        escalator = IncidentEscalator(storage, clock)
        created = escalator.raise_signal(self._signal(85))
        clock.advance(minutes=10)
        outcome = escalator.raise_signal(self._signal(95))

        assert outcome.mode == IncidentMode.DEDUPED
        assert outcome.incident_id == created.incident_id
        stored = storage.find_active_incident(SIGNAL)
        assert stored.updated_at == NOW
        assert stored.risk_score == 85.0

    def test_incident_raise_after_cooldown_escalates(self, storage, clock):
        """Test a more severe raise after the cooldown escalates."""
        escalator = IncidentEscalator(storage, clock)
        created = escalator.raise_signal(self._signal(45))
        assert created.severity == IncidentSeverity.SEV3

        later = clock.advance(minutes=61)
        outcome = escalator.raise_signal(self._signal(85))
        assert outcome.mode == IncidentMode.ESCALATED
        assert outcome.incident_id == created.incident_id

        stored = storage.find_active_incident(SIGNAL)
        assert stored.severity == IncidentSeverity.SEV1
        assert stored.sla_due_at == later + timedelta(minutes=30)
        assert stored.cooldown_until == later + timedelta(minutes=60)

    def test_incident_raise_never_downgrades(self, storage, clock):
        """Test a lower risk refreshes the incident without lowering severity."""
        escalator = IncidentEscalator(storage, clock)
        escalator.raise_signal(self._signal(85))
        clock.advance(minutes=61)
        outcome = escalator.raise_signal(self._signal(10))

        assert outcome.mode == IncidentMode.UPDATED
        assert outcome.severity == IncidentSeverity.SEV1
        stored = storage.find_active_incident(SIGNAL)
        assert stored.severity == IncidentSeverity.SEV1
        assert stored.risk_score == 10.0

    def test_incident_raise_applies_floor(self, storage, clock):
        """Test a severity floor lifts a low risk score."""
        outcome = IncidentEscalator(storage, clock).raise_signal(
            self._signal(10, severity_floor=IncidentSeverity.SEV3)
        )
        assert outcome.severity == IncidentSeverity.SEV3

    def test_incident_cooldown_floored_at_one_minute(self, storage, clock):
        """Test a sub-minute cooldown becomes one minute."""
        IncidentEscalator(storage, clock).raise_signal(self._signal(50, cooldown_minutes=0.4))
        assert storage.find_active_incident(SIGNAL).cooldown_until == NOW + timedelta(minutes=1)

    def test_incident_signal_versions_isolated(self, storage, clock):
        """Test each signal version keeps its own active incident."""
        escalator = IncidentEscalator(storage, clock)
        first = escalator.raise_signal(self._signal(85))
        second = escalator.raise_signal(self._signal(85, signal_version="social-alert-v2"))
        assert first.incident_id != second.incident_id
        assert second.mode == IncidentMode.CREATED
        assert len(escalator.active_incidents(SIGNAL)) == 1


# ============================================================================
# ER Target Tests
# ============================================================================


class TestErTargets:
    """Test auto growth, baselines and manual overrides."""

    def _prior_year_rows(self):
        return [
            make_metric_row(
                channel=Channel.FACEBOOK,
                exposure=1000,
                engagement=10,
                published_at=datetime(2024, 1, 15, 17, tzinfo=UTC),
            ),
            make_metric_row(
                channel=Channel.FACEBOOK,
                exposure=1000,
                engagement=20,
                published_at=datetime(2024, 10, 15, 17, tzinfo=UTC),
            ),
        ]

    def test_er_targets_auto_growth_clamped(self):
        """Test growth stays within [0.03, 0.18]."""
        assert auto_growth_pct(-5) == pytest.approx(0.05)
        assert auto_growth_pct(0.1) == pytest.approx(0.10)
        assert auto_growth_pct(10) == pytest.approx(0.18)

    def test_er_targets_momentum_floors_q1(self):
        """Test a zero Q1 ER divides by 0.01."""
        assert momentum_between(0.0, 1.0) == pytest.approx(100.0)

    def test_er_targets_auto_target(self):
        """Test baseline, momentum and target from two prior-year months."""
        calculator = ErTargetCalculator(TimeBucketer(BOGOTA))
        autos = calculator.auto_targets(self._prior_year_rows(), [Channel.FACEBOOK, Channel.TIKTOK])

        facebook = autos[Channel.FACEBOOK]
        assert facebook.baseline == pytest.approx(1.5)
        assert facebook.momentum == pytest.approx(1.0)
        assert facebook.growth == pytest.approx(0.18)
        assert facebook.target == pytest.approx(1.77)

        tiktok = autos[Channel.TIKTOK]
        assert tiktok.baseline == 0.0
        assert tiktok.growth == pytest.approx(0.05)

    def test_er_targets_build_progress(self):
        """Test current ER progress and gap against the auto target."""
        calculator = ErTargetCalculator(TimeBucketer(BOGOTA))
        autos = calculator.auto_targets(self._prior_year_rows(), [Channel.FACEBOOK])
        current = [make_metric_row(channel=Channel.FACEBOOK, exposure=1000, engagement=15)]
        view = calculator.build(2025, [Channel.FACEBOOK], autos, current, stored={})

        item = view.items[0]
        assert view.baseline_year == 2024
        assert item.source == TargetSource.AUTO
        assert item.current_er == 1.5
        assert item.target_er == 1.77
        assert item.progress_pct == pytest.approx(84.75, abs=0.01)
        assert item.gap == pytest.approx(-0.27, abs=0.01)

    def test_er_targets_manual_override_wins(self):
        """Test a stored manual target replaces the auto target."""
        calculator = ErTargetCalculator(TimeBucketer(BOGOTA))
        autos = calculator.auto_targets(self._prior_year_rows(), [Channel.FACEBOOK])
        stored = {
            Channel.FACEBOOK: KpiTarget(
                year=2025,
                channel=Channel.FACEBOOK,
                baseline_er=1.5,
                target_er=2.5,
                source=TargetSource.MANUAL,
                override_reason="campana",
            )
        }
        view = calculator.build(2025, [Channel.FACEBOOK], autos, [], stored)
        item = view.items[0]
        assert item.target_er == 2.5
        assert item.auto_target_er == 1.77
        assert item.source == TargetSource.MANUAL
        assert item.override_reason == "campana"

    def test_er_targets_validate_year(self):
        """Test years outside 2000-2100 are rejected."""
        validate_year(2000)
        validate_year(2100)
        with pytest.raises(InvalidRequestError):
            validate_year(1999)


# ============================================================================
# Reconciliation Tests
# ============================================================================


class TestReconciliation:
    """Test status folding and per-channel snapshots."""

    def test_reconciliation_derive_status_precedence(self):
        """Test error > warning > ok > unknown."""
        assert derive_status([]) == ReconciliationStatus.UNKNOWN
        assert derive_status([ReconciliationStatus.UNKNOWN]) == ReconciliationStatus.UNKNOWN
        assert derive_status([ReconciliationStatus.UNKNOWN, ReconciliationStatus.OK]) == ReconciliationStatus.OK
        assert derive_status([ReconciliationStatus.OK, ReconciliationStatus.WARNING]) == ReconciliationStatus.WARNING
        assert derive_status([ReconciliationStatus.ERROR, ReconciliationStatus.OK]) == ReconciliationStatus.ERROR

    def test_reconciliation_snapshot_mismatch_warns(self):
        """Test missing stored rows give a negative delta and a warning."""
        snapshot = build_snapshot(
            "run-1",
            Channel.FACEBOOK,
            ChannelRowStats(channel=Channel.FACEBOOK, rows=10),
            ChannelRowStats(channel=Channel.FACEBOOK, rows=8),
        )
        assert snapshot.delta_rows == -2
        assert snapshot.status == ReconciliationStatus.WARNING
        assert snapshot.details["delta_pct"] == -20.0

    def test_reconciliation_snapshot_match_ok(self):
        """Test equal counts are ok."""
        stats = ChannelRowStats(channel=Channel.TIKTOK, rows=4)
        snapshot = build_snapshot("run-1", Channel.TIKTOK, stats, stats)
        assert snapshot.status == ReconciliationStatus.OK
        assert snapshot.delta_rows == 0

    def test_reconciliation_snapshot_missing_source(self):
        """Test a channel absent from the source counts as zero source rows."""
        snapshot = build_snapshot(
            "run-1", Channel.LINKEDIN, None, ChannelRowStats(channel=Channel.LINKEDIN, rows=3)
        )
        assert snapshot.source_rows == 0
        assert snapshot.delta_rows == 3
        assert snapshot.details["delta_pct"] == 300.0


# ============================================================================
# Dashboard Settings Tests
# ============================================================================


class TestDashboardSettings:
    """Test the settings lifecycle and audited updates."""

    def test_settings_current_before_initialize_raises(self, storage):
        """Test reading settings before startup is a programming error."""
        with pytest.raises(RuntimeError):
            DashboardSettingsManager(storage).current

    def test_settings_initialize_creates_defaults(self, storage):
        """Test first start writes the default row once."""
        manager = DashboardSettingsManager(storage)
        created = manager.initialize()
        assert created.risk_threshold == 60.0
        assert storage.read_dashboard_setting().risk_threshold == 60.0
        assert DashboardSettingsManager(storage).initialize().created_at == storage.read_dashboard_setting().created_at

    def test_settings_update_clamps_and_audits(self, storage, clock):
        """Test out-of-range values are clamped and the change is audited."""
        manager = DashboardSettingsManager(storage, clock=clock)
        manager.initialize()
        updated = manager.update(SettingsPatch(risk_threshold=150), ACTOR_ID, request_id="req-1")

        assert updated.risk_threshold == 100.0
        assert manager.current.risk_threshold == 100.0
        entries = storage.read_audit_entries(action="social_settings_updated")
        assert len(entries) == 1
        assert entries[0].before["risk_threshold"] == 60.0
        assert entries[0].after["risk_threshold"] == 100.0
        assert entries[0].request_id == "req-1"

    def test_settings_update_without_change_conflicts(self, storage):
        """Test a patch that changes nothing is a conflict."""
        manager = DashboardSettingsManager(storage)
        manager.initialize()
        with pytest.raises(ConflictError):
            manager.update(SettingsPatch(risk_threshold=60), ACTOR_ID)

    def test_settings_update_rejects_non_uuid_actor(self, storage):
        """Test the actor must be a UUID."""
        manager = DashboardSettingsManager(storage)
        manager.initialize()
        with pytest.raises(InvalidRequestError):
            manager.update(SettingsPatch(risk_threshold=70), "alice")

    def test_settings_normalize_patch(self):
        """Test blank focus, percent clamps and cooldown floor."""
        normalized = normalize_patch(
            SettingsPatch(focus_account="  ", target_shs=-5, alert_cooldown_minutes=0.4)
        )
        assert normalized == {"focus_account": None, "target_shs": 0, "alert_cooldown_minutes": 1}


# ============================================================================
# Dashboard Helper Tests
# ============================================================================


class TestDashboardHelpers:
    """Test filter parsing and label derivation."""

    def _post(self, **overrides) -> PostRecord:
        defaults = dict(
            post_id="post-1",
            channel=Channel.INSTAGRAM,
            account_name="marca",
            published_at=NOW,
            external_post_id="ig-1",
            created_at=NOW,
            updated_at=NOW,
        )
        defaults.update(overrides)
        return PostRecord(**defaults)

    def test_dashboard_parse_filters_wire_names(self):
        """Test from/to wire names and enum values parse."""
        filters = parse_filters({"from": "2025-01-01T00:00:00Z", "to": "2025-02-01T00:00:00Z", "channels": ["tiktok"]})
        assert filters.date_from == datetime(2025, 1, 1, tzinfo=UTC)
        assert filters.channels == [Channel.TIKTOK]

    def test_dashboard_parse_filters_unknown_preset(self):
        """Test an unknown preset is a validation error with field details."""
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_filters({"preset": "last_century"})
        assert exc_info.value.details["errors"][0]["loc"] == ["preset"]

    def test_dashboard_parse_filters_window_days_restricted(self):
        """Test window_days only accepts 7, 30 and 90."""
        with pytest.raises(InvalidRequestError):
            parse_filters({"window_days": 14})

    def test_dashboard_parse_filters_hashtags_normalized(self):
        """Test hashtags lose their # and case."""
        assert parse_filters({"hashtags": ["#Oferta", " ", "hogar"]}).hashtags == ["oferta", "hogar"]

    def test_dashboard_content_words(self):
        """Test the first three long non-stopwords are taken."""
        assert content_words("Nueva promocion para clientes #oferta", None) == ["nueva", "promocion", "clientes"]
        assert content_words("#Oferta de hogar", "") == ["oferta", "hogar"]
        assert content_words("de la y", None) == []

    def test_dashboard_publish_frequency_label(self):
        """Test alta/media/baja posts-per-day bands."""
        assert publish_frequency_label(90, 30) == "alta"
        assert publish_frequency_label(30, 30) == "media"
        assert publish_frequency_label(10, 30) == "baja"

    def test_dashboard_channel_mix_enum_order(self):
        """Test channels per account follow enum order."""
        rows = [
            make_metric_row(account_name="marca", channel=Channel.TIKTOK),
            make_metric_row(account_name="marca", channel=Channel.FACEBOOK),
            make_metric_row(account_name="marca", channel=Channel.TIKTOK),
        ]
        assert channel_mix(rows) == {"marca": [Channel.FACEBOOK, Channel.TIKTOK]}

    def test_dashboard_heatmap_view_rate(self):
        """Test view rate is views over exposure."""
        totals = MetricAggregator().totals([make_metric_row(views=250, exposure=1000)])
        assert heatmap_value(totals, HeatmapMetric.VIEW_RATE) == pytest.approx(25.0)
        assert heatmap_value(totals, HeatmapMetric.VIEWS) == 250

    def test_dashboard_scatter_label_fallbacks(self):
        """Test tag dimensions fall back to placeholder labels."""
        post = self._post()
        assert scatter_labels(post, ScatterDimension.HASHTAG) == ["sin_hashtag"]
        assert scatter_labels(post, ScatterDimension.CAMPAIGN) == ["sin_campana"]
        assert scatter_labels(post, ScatterDimension.POST_TYPE) == ["unknown"]
        assert scatter_labels(self._post(topics=["precio", "servicio"]), ScatterDimension.TOPIC) == ["precio", "servicio"]


# ============================================================================
# Alert Evaluation Tests
# ============================================================================


class TestAlertReasons:
    """Test threshold checks and the raised signal."""

    def _overview(self, risk: float = 10, sentiment_delta: float = 0, er_delta: float = 0):
        return SimpleNamespace(
            generated_at=NOW,
            settings=DashboardSetting(),
            kpis=Kpis(riesgo_activo=risk, classified_items=25),
            delta_vs_previous=KpiDelta(sentimiento_neto=sentiment_delta, er_global=er_delta),
        )

    def test_alert_reasons_none(self):
        """Test a calm overview triggers nothing."""
        assert alert_reasons(self._overview()) == []

    def test_alert_reasons_risk_threshold_inclusive(self):
        """Test risk equal to the threshold triggers."""
        assert alert_reasons(self._overview(risk=60)) == ["risk_threshold"]

    def test_alert_reasons_drops(self):
        """Test drops at the thresholds trigger in fixed order."""
        reasons = alert_reasons(self._overview(risk=70, sentiment_delta=-10, er_delta=-5))
        assert reasons == ["risk_threshold", "sentiment_drop_threshold", "er_drop_threshold"]

    def test_alert_build_signal_floor_on_drop(self):
        """Test a drop reason floors severity at SEV3."""
        overview = self._overview(sentiment_delta=-15)
        signal = build_signal(overview, ["sentiment_drop_threshold"], SIGNAL)
        assert signal.severity_floor == DROP_SEVERITY_FLOOR
        assert signal.classified_items == 25
        assert signal.cooldown_minutes == 60
        assert signal.payload["reasons"] == ["sentiment_drop_threshold"]

    def test_alert_build_signal_risk_only_no_floor(self):
        """Test a risk-only trigger carries no floor."""
        signal = build_signal(self._overview(risk=90), ["risk_threshold"], SIGNAL)
        assert signal.severity_floor is None
        assert signal.risk_score == 90
