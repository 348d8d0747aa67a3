"""
Dashboard Service.

Assembles every dashboard view from storage reads. Independent reads for a
view (current rows, comparison rows, latest run, coverage, reconciliation)
run concurrently in worker threads and are joined before any aggregation
starts. Full-window scans go through the bounded keyset reader.

Views:
    overview     KPIs, deltas, target progress, gap-free trend, channel/account splits
    accounts     account ranking with publishing thresholds (offset paged)
    risk         daily sentiment trend, risk by channel/account, active alerts
    heatmap      month x weekday grid (84 cells, local zone)
    scatter      exposure/engagement per label (top 200)
    breakdown    ER per label (top 100)
    er_targets   ER targets per channel for a year
    etl_quality  latest run, coverage, reconciliation, recent runs
    posts        keyset-paged post listing
    comments     offset-paged comment listing for one post

Version: dashboard_service_v1
"""

import asyncio
import math
import re
from datetime import timedelta
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from socialpulse.config import Settings, get_settings
from socialpulse.errors import InvalidRequestError
from socialpulse.models.enums import (
    BreakdownDimension,
    Channel,
    HeatmapMetric,
    ScatterDimension,
    SortMode,
    TrendGranularity,
)
from socialpulse.models.metrics import (
    CommentFilters,
    CommentOverridePatch,
    CommentRecord,
    DashboardFilters,
    MetricRow,
    PostRecord,
)
from socialpulse.models.pagination import KeysetCursor, OffsetCursor, Page
from socialpulse.models.settings import DashboardSetting, SettingsPatch
from socialpulse.models.targets import ErTargetInput, ErTargetsView, KpiTarget
from socialpulse.models.views import (
    AccountRanking,
    AccountsView,
    AccountSummary,
    AlertSummary,
    ChannelErProgress,
    ChannelSummary,
    Diagnostics,
    ErBreakdownView,
    EtlQualityView,
    HeatmapCell,
    HeatmapView,
    KpiDelta,
    Kpis,
    LabelStats,
    Overview,
    RiskGroup,
    RiskView,
    ScatterView,
    SentimentTrendPoint,
    TargetProgress,
    TrendPoint,
)
from socialpulse.models.windows import ResolvedWindow
from socialpulse.storage.base import StorageBackend
from socialpulse.utils.clock import Clock, utc_now

from .aggregator import GroupTotals, MetricAggregator, ShareOfVoice
from .bucketing import TimeBucketer, select_granularity
from .comments import CommentService
from .dashboard_settings import DashboardSettingsManager
from .er_targets import ErTargetCalculator, ErTargetService
from .formulas import pct, progress_pct, round_metric
from .pagination import (
    MAX_ACCOUNT_PAGE_SIZE,
    build_page,
    clamp_page_size,
    cursor_for,
    decode_keyset_cursor,
    decode_offset,
    paginate_offset,
)
from .reconciliation import Reconciler, derive_status
from .rows import RowReader
from .sync_run import SyncRunTracker
from .windows import WindowResolver

logger = structlog.get_logger()

DEFAULT_MIN_POSTS = 5
DEFAULT_MIN_EXPOSURE = 5000
DEFAULT_ACCOUNT_PAGE_SIZE = 100
DEFAULT_ETL_RUNS = 20
MAX_ETL_RUNS = 100
SCATTER_LIMIT = 200
BREAKDOWN_LIMIT = 100

STOPWORDS = frozenset(
    {
        "de", "la", "el", "y", "en", "a", "que", "por", "con",
        "para", "del", "los", "las", "un", "una", "al", "se",
    }
)
WORD_CLEANUP = re.compile(r"[^a-z0-9#_\s]")
MIN_WORD_LENGTH = 4
WORDS_PER_POST = 3


def parse_filters(payload: Optional[dict[str, Any]]) -> DashboardFilters:
    """
    Validate raw filter input (wire names accepted).

    Raises:
        InvalidRequestError: unknown enum value or malformed field
    """
    try:
        return DashboardFilters.model_validate(payload or {})
    except ValidationError as e:
        raise InvalidRequestError(
            "Invalid dashboard filters",
            details={
                "errors": [
                    {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
                    for err in e.errors()
                ]
            },
        ) from e


def content_words(title: str, text: Optional[str]) -> list[str]:
    """First three lowercase words of length >= 4 that are not stopwords."""
    source = f"{title} {text or ''}".lower()
    words = []
    for token in WORD_CLEANUP.sub(" ", source).split():
        token = token.lstrip("#")
        if len(token) >= MIN_WORD_LENGTH and token not in STOPWORDS:
            words.append(token)
        if len(words) == WORDS_PER_POST:
            break
    return words


def publish_frequency_label(posts: int, window_days: int) -> str:
    per_day = posts / max(window_days, 1)
    if per_day >= 3:
        return "alta"
    if per_day >= 1:
        return "media"
    return "baja"


def channel_mix(rows: list[MetricRow]) -> dict[str, list[Channel]]:
    """Channels each account published on, in channel enum order."""
    seen: dict[str, set[Channel]] = {}
    for row in rows:
        seen.setdefault(row.account_name, set()).add(row.channel)
    order = list(Channel)
    return {name: sorted(channels, key=order.index) for name, channels in seen.items()}


def label_stats(label: str, totals: GroupTotals) -> LabelStats:
    return LabelStats(
        label=label,
        posts=totals.posts,
        exposure_total=round_metric(totals.exposure),
        engagement_total=round_metric(totals.engagement),
        er_global=round_metric(totals.er_global),
    )


def kpi_delta(current: Kpis, previous: Kpis) -> KpiDelta:
    return KpiDelta(
        posts=current.posts - previous.posts,
        exposure_total=round_metric(current.exposure_total - previous.exposure_total),
        engagement_total=round_metric(current.engagement_total - previous.engagement_total),
        er_global=round_metric(current.er_global - previous.er_global),
        sentimiento_neto=round_metric(current.sentimiento_neto - previous.sentimiento_neto),
        riesgo_activo=round_metric(current.riesgo_activo - previous.riesgo_activo),
        shs=round_metric(current.shs - previous.shs),
        focus_sov=round_metric(current.focus_sov - previous.focus_sov),
    )


async def _in_thread(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return await asyncio.to_thread(func, *args, **kwargs)


class DashboardService:
    """
    Read side of the dashboard plus the audited mutations it exposes.

    ``startup()`` must run once before any view is served; it initializes the
    dashboard settings entity.

    Example:
        >>> service = DashboardService(storage)
        >>> await service.startup()
        >>> overview = await service.overview(parse_filters({"preset": "30d"}))
        >>> overview.kpis.sentimiento_neto
        40.0
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: Optional[Settings] = None,
        clock: Clock = utc_now,
        settings_manager: Optional[DashboardSettingsManager] = None,
    ):
        self.storage = storage
        self.config = config or get_settings()
        self.clock = clock
        self.resolver = WindowResolver(epoch=self.config.data_epoch, clock=clock)
        self.aggregator = MetricAggregator()
        self.bucketer = TimeBucketer(self.config.tz)
        self.reader = RowReader(
            storage,
            batch_size=self.config.scan_batch_size,
            max_rows=self.config.scan_max_rows,
        )
        self.er_targets = ErTargetService(
            storage, ErTargetCalculator(self.bucketer), self.reader, clock
        )
        self.reconciler = Reconciler(storage, clock)
        self.runs = SyncRunTracker(storage)
        self.comments = CommentService(storage, clock)
        self.settings = settings_manager or DashboardSettingsManager(storage, self.config, clock)
        self.logger = structlog.get_logger()

    async def startup(self) -> DashboardSetting:
        if self.settings.initialized:
            return self.settings.current
        return await _in_thread(self.settings.initialize)

    # =========================================================================
    # Overview
    # =========================================================================

    async def overview(self, filters: DashboardFilters) -> Overview:
        """
        Main dashboard record for the filtered window.

        The previous-period KPIs use the comparison window; the focus
        account is fixed from the current window and reused for the previous
        SOV so the delta compares the same account.
        """
        setting = self.settings.current
        window, comparison = self.resolver.resolve_with_comparison(filters)
        target_year = self.bucketer.local_date(window.end - timedelta(microseconds=1)).year

        current_rows, previous_rows, prior_year_rows, latest_run, coverage, snapshots = (
            await asyncio.gather(
                _in_thread(self.reader.metric_rows, filters, window.start, window.end),
                _in_thread(self.reader.metric_rows, filters, comparison.start, comparison.end),
                _in_thread(self.er_targets.prior_year_rows, target_year, filters),
                _in_thread(self.storage.latest_sync_run),
                _in_thread(self.storage.coverage),
                _in_thread(self.reconciler.latest_by_channel),
            )
        )
        channels = filters.channels or list(Channel)
        targets = await _in_thread(
            self.er_targets.compute, target_year, channels, prior_year_rows, current_rows
        )

        current = self.aggregator.totals(current_rows)
        previous = self.aggregator.totals(previous_rows)
        sov = self.aggregator.share_of_voice(current_rows)
        previous_sov = self.aggregator.share_of_voice(previous_rows)

        focus = sov.focus_account(setting.focus_account)
        focus_sov = sov.account_pct(focus)
        previous_focus_sov = previous_sov.account_pct(focus)

        kpis = self.aggregator.kpis(current, previous.exposure, focus, focus_sov)
        previous_kpis = self.aggregator.kpis(previous, previous.exposure, focus, previous_focus_sov)
        current_shs = current.health_score(previous.exposure)
        sov_delta = focus_sov - previous_focus_sov

        target_progress = TargetProgress(
            target_quarterly_sov_pp=round_metric(setting.target_quarterly_sov_pp),
            sov_delta_pp=round_metric(sov_delta),
            quarterly_sov_progress_pct=round_metric(
                progress_pct(sov_delta, setting.target_quarterly_sov_pp)
            ),
            target_shs=round_metric(setting.target_shs),
            shs_progress_pct=round_metric(progress_pct(current_shs, setting.target_shs)),
            shs_gap=round_metric(current_shs - setting.target_shs),
            er_by_channel=[
                ChannelErProgress(
                    channel=item.channel,
                    current_er=item.current_er,
                    target_er=item.target_er,
                    progress_pct=item.progress_pct,
                    gap=item.gap,
                )
                for item in targets.items
            ],
        )

        granularity = select_granularity(filters.trend_granularity, window.window_days)
        counters = latest_run.counters if latest_run else None

        overview = Overview(
            generated_at=self.clock(),
            last_etl_at=latest_run.last_activity_at if latest_run else None,
            preset=window.preset,
            window_start=window.start,
            window_end=window.end,
            window_days=window.window_days,
            granularity=granularity,
            comparison=comparison,
            kpis=kpis,
            previous_period=previous_kpis,
            delta_vs_previous=kpi_delta(kpis, previous_kpis),
            target_progress=target_progress,
            trend=self._trend(window, granularity, current_rows),
            by_channel=self._by_channel(current_rows, sov),
            by_account=self._by_account(current_rows, sov),
            diagnostics=Diagnostics(
                insufficient_data=current.classified < self.config.insufficient_data_threshold,
                classified_items=current.classified,
                unclassified_items=max(current.posts - current.classified, 0),
                unknown_sentiment_items=current.unknown,
                last_run_status=latest_run.status if latest_run else None,
                processed_objects=counters.objects_processed if counters else 0,
                anomalous_object_keys=counters.anomalous_object_keys if counters else 0,
                rows_pending_classification=(
                    counters.rows_pending_classification if counters else 0
                ),
            ),
            coverage=coverage,
            reconciliation_status=derive_status(s.status for s in snapshots),
            settings=setting,
        )
        self.logger.info(
            "overview_built",
            preset=window.preset.value,
            posts=kpis.posts,
            previous_posts=previous_kpis.posts,
            granularity=granularity.value,
        )
        return overview

    def _trend(
        self, window: ResolvedWindow, granularity: TrendGranularity, rows: list[MetricRow]
    ) -> list[TrendPoint]:
        """One point per bucket; SHS compares each bucket to the one before it."""
        buckets = self.bucketer.timeline(window.start, window.end, granularity)
        merged = self.bucketer.merge(
            buckets, rows, lambda row: row.published_at, GroupTotals.add, GroupTotals
        )
        points = []
        previous_exposure: Optional[float] = None
        for bucket in buckets:
            totals = merged[bucket.label]
            reference = totals.exposure if previous_exposure is None else previous_exposure
            points.append(
                TrendPoint(
                    label=bucket.label,
                    bucket_start=bucket.start_date,
                    bucket_end=bucket.end_date,
                    boundary_at=bucket.boundary_at,
                    posts=totals.posts,
                    exposure_total=round_metric(totals.exposure),
                    engagement_total=round_metric(totals.engagement),
                    er_global=round_metric(totals.er_global),
                    classified_items=totals.classified,
                    sentimiento_neto=round_metric(totals.sentimiento_neto),
                    riesgo_activo=round_metric(totals.riesgo_activo),
                    shs=round_metric(totals.health_score(reference)),
                )
            )
            previous_exposure = totals.exposure
        return points

    def _by_channel(self, rows: list[MetricRow], sov: ShareOfVoice) -> list[ChannelSummary]:
        """Sorted by (exposure_total DESC, posts DESC, channel ASC)."""
        items = [
            ChannelSummary(
                channel=channel,
                posts=totals.posts,
                exposure_total=round_metric(totals.exposure),
                engagement_total=round_metric(totals.engagement),
                er_global=round_metric(totals.er_global),
                sentimiento_neto=round_metric(totals.sentimiento_neto),
                riesgo_activo=round_metric(totals.riesgo_activo),
                sov=round_metric(sov.channel_pct(channel)),
            )
            for channel, totals in self.aggregator.group(rows, lambda row: row.channel).items()
        ]
        items.sort(key=lambda item: (-item.exposure_total, -item.posts, item.channel.value))
        return items

    def _by_account(self, rows: list[MetricRow], sov: ShareOfVoice) -> list[AccountSummary]:
        """Sorted by (sov DESC, exposure_total DESC, account_name ASC)."""
        mix = channel_mix(rows)
        items = [
            AccountSummary(
                account_name=name,
                channel_mix=mix.get(name, []),
                posts=totals.posts,
                exposure_total=round_metric(totals.exposure),
                engagement_total=round_metric(totals.engagement),
                er_global=round_metric(totals.er_global),
                sentimiento_neto=round_metric(totals.sentimiento_neto),
                riesgo_activo=round_metric(totals.riesgo_activo),
                sov=round_metric(sov.account_pct(name)),
            )
            for name, totals in self.aggregator.group(rows, lambda row: row.account_name).items()
        ]
        items.sort(key=lambda item: (-item.sov, -item.exposure_total, item.account_name))
        return items

    # =========================================================================
    # Accounts and risk
    # =========================================================================

    async def accounts(
        self,
        filters: DashboardFilters,
        min_posts: Optional[float] = None,
        min_exposure: Optional[float] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> AccountsView:
        """
        Account ranking sorted by (er_ponderado DESC, exposure_total DESC, account_name ASC).

        Accounts below the posting thresholds stay in the ranking with
        ``meets_threshold`` false.
        """
        min_posts_applied = max(
            1, int(math.floor(DEFAULT_MIN_POSTS if min_posts is None else min_posts))
        )
        min_exposure_applied = max(
            0, int(math.floor(DEFAULT_MIN_EXPOSURE if min_exposure is None else min_exposure))
        )
        page_size = clamp_page_size(limit, MAX_ACCOUNT_PAGE_SIZE, DEFAULT_ACCOUNT_PAGE_SIZE)
        offset = decode_offset(cursor)
        window, comparison = self.resolver.resolve_with_comparison(filters)

        current_rows, previous_rows, latest_run = await asyncio.gather(
            _in_thread(self.reader.metric_rows, filters, window.start, window.end),
            _in_thread(self.reader.metric_rows, filters, comparison.start, comparison.end),
            _in_thread(self.storage.latest_sync_run),
        )

        sov = self.aggregator.share_of_voice(current_rows)
        previous_groups = self.aggregator.group(previous_rows, lambda row: row.account_name)
        mix = channel_mix(current_rows)
        ranking = []
        for name, totals in self.aggregator.group(current_rows, lambda row: row.account_name).items():
            previous = previous_groups.get(name, GroupTotals())
            ranking.append(
                AccountRanking(
                    account_name=name,
                    channel_mix=mix.get(name, []),
                    posts=totals.posts,
                    exposure_total=round_metric(totals.exposure),
                    engagement_total=round_metric(totals.engagement),
                    er_ponderado=round_metric(totals.er_global),
                    sentimiento_neto=round_metric(totals.sentimiento_neto),
                    riesgo_activo=round_metric(totals.riesgo_activo),
                    sov=round_metric(sov.account_pct(name)),
                    delta_exposure=round_metric(totals.exposure - previous.exposure),
                    delta_engagement=round_metric(totals.engagement - previous.engagement),
                    delta_er=round_metric(totals.er_global - previous.er_global),
                    meets_threshold=(
                        totals.posts >= min_posts_applied
                        and totals.exposure >= min_exposure_applied
                    ),
                )
            )
        ranking.sort(key=lambda item: (-item.er_ponderado, -item.exposure_total, item.account_name))
        page = paginate_offset(ranking, page_size, offset)

        return AccountsView(
            generated_at=self.clock(),
            last_etl_at=latest_run.last_activity_at if latest_run else None,
            preset=window.preset,
            window_start=window.start,
            window_end=window.end,
            min_posts=min_posts_applied,
            min_exposure=min_exposure_applied,
            items=page.items,
            limit=page.limit,
            has_next=page.has_next,
            next_cursor=page.next_cursor,
        )

    async def risk(self, filters: DashboardFilters) -> RiskView:
        """Risk groups are sorted by (riesgo_activo DESC, negative DESC, key ASC)."""
        window = self.resolver.resolve(filters)
        rows, latest_run, incidents = await asyncio.gather(
            _in_thread(self.reader.metric_rows, filters, window.start, window.end),
            _in_thread(self.storage.latest_sync_run),
            _in_thread(
                self.storage.list_active_incidents,
                self.config.alert_signal_version,
                self.config.alert_list_limit,
            ),
        )

        days = self.bucketer.timeline(window.start, window.end, TrendGranularity.DAY)
        merged = self.bucketer.merge(
            days, rows, lambda row: row.published_at, GroupTotals.add, GroupTotals
        )
        sentiment_trend = [
            SentimentTrendPoint(
                day=bucket.start_date,
                classified_items=merged[bucket.label].classified,
                positive=merged[bucket.label].positive,
                negative=merged[bucket.label].negative,
                neutral=merged[bucket.label].neutral,
                sentimiento_neto=round_metric(merged[bucket.label].sentimiento_neto),
                riesgo_activo=round_metric(merged[bucket.label].riesgo_activo),
            )
            for bucket in days
        ]

        classified = [row for row in rows if row.sentiment.is_classified]
        by_channel = self._risk_groups(classified, lambda row: row.channel.value)
        by_account = self._risk_groups(classified, lambda row: row.account_name)

        return RiskView(
            generated_at=self.clock(),
            last_etl_at=latest_run.last_activity_at if latest_run else None,
            preset=window.preset,
            window_start=window.start,
            window_end=window.end,
            sentiment_trend=sentiment_trend,
            by_channel=by_channel,
            by_account=by_account,
            alerts=[
                AlertSummary(
                    incident_id=incident.incident_id,
                    severity=incident.severity,
                    status=incident.status,
                    risk_score=round_metric(incident.risk_score),
                    classified_items=incident.classified_items,
                    updated_at=incident.updated_at,
                    cooldown_until=incident.cooldown_until,
                )
                for incident in incidents
            ],
        )

    def _risk_groups(self, rows: list[MetricRow], key: Callable[[MetricRow], str]) -> list[RiskGroup]:
        groups = [
            RiskGroup(
                key=name,
                classified_items=totals.classified,
                negative=totals.negative,
                riesgo_activo=round_metric(totals.riesgo_activo),
            )
            for name, totals in self.aggregator.group(rows, key).items()
        ]
        groups.sort(key=lambda group: (-group.riesgo_activo, -group.negative, group.key))
        return groups

    # =========================================================================
    # Facets
    # =========================================================================

    async def heatmap(self, filters: DashboardFilters, metric: HeatmapMetric) -> HeatmapView:
        """Month (1-12) x ISO weekday (1-7) grid in the local zone, always 84 cells."""
        window = self.resolver.resolve(filters)
        rows = await _in_thread(self.reader.metric_rows, filters, window.start, window.end)

        grid = self.aggregator.group(
            rows,
            lambda row: (
                self.bucketer.local_month(row.published_at),
                self.bucketer.local_weekday(row.published_at),
            ),
        )
        cells = []
        for month in range(1, 13):
            for weekday in range(1, 8):
                totals = grid.get((month, weekday), GroupTotals())
                cells.append(
                    HeatmapCell(
                        month=month,
                        weekday=weekday,
                        posts=totals.posts,
                        value=round_metric(heatmap_value(totals, metric)),
                    )
                )
        return HeatmapView(
            generated_at=self.clock(),
            metric=metric,
            window_start=window.start,
            window_end=window.end,
            cells=cells,
        )

    async def scatter(self, filters: DashboardFilters, dimension: ScatterDimension) -> ScatterView:
        """Per-label totals sorted by (exposure_total DESC, posts DESC, label ASC), top 200."""
        window = self.resolver.resolve(filters)
        posts = await _in_thread(self.reader.posts, filters, window.start, window.end)

        groups = self.aggregator.group_labels(posts, lambda post: scatter_labels(post, dimension))
        items = [label_stats(label, totals) for label, totals in groups.items()]
        items.sort(key=lambda item: (-item.exposure_total, -item.posts, item.label))
        return ScatterView(
            generated_at=self.clock(), dimension=dimension, items=items[:SCATTER_LIMIT]
        )

    async def breakdown(
        self, filters: DashboardFilters, dimension: BreakdownDimension
    ) -> ErBreakdownView:
        """Per-label ER sorted by (er_global DESC, posts DESC, label ASC), top 100."""
        window = self.resolver.resolve(filters)
        posts = await _in_thread(self.reader.posts, filters, window.start, window.end)

        account_posts: dict[str, int] = {}
        if dimension == BreakdownDimension.PUBLISH_FREQUENCY:
            for post in posts:
                account_posts[post.account_name] = account_posts.get(post.account_name, 0) + 1

        def labels(post: PostRecord) -> list[str]:
            if dimension == BreakdownDimension.HASHTAG:
                return post.hashtags or ["sin_hashtag"]
            if dimension == BreakdownDimension.TOPIC:
                return post.topics or ["sin_tema"]
            if dimension == BreakdownDimension.WORD:
                return content_words(post.title, post.text) or ["sin_palabra"]
            if dimension == BreakdownDimension.POST_TYPE:
                return [post.post_type or "unknown"]
            if dimension == BreakdownDimension.PUBLISH_FREQUENCY:
                return [publish_frequency_label(account_posts[post.account_name], window.window_days)]
            return [str(self.bucketer.local_weekday(post.published_at))]

        groups = self.aggregator.group_labels(posts, labels)
        items = [label_stats(label, totals) for label, totals in groups.items()]
        items.sort(key=lambda item: (-item.er_global, -item.posts, item.label))
        return ErBreakdownView(
            generated_at=self.clock(), dimension=dimension, items=items[:BREAKDOWN_LIMIT]
        )

    # =========================================================================
    # Targets and ETL quality
    # =========================================================================

    async def er_target_view(self, filters: DashboardFilters, year: Optional[int] = None) -> ErTargetsView:
        window = self.resolver.resolve(filters)
        if year is None:
            year = self.bucketer.local_date(self.clock()).year
        return await _in_thread(self.er_targets.get_targets, year, filters, window.start, window.end)

    async def etl_quality(self, limit_runs: Optional[int] = None) -> EtlQualityView:
        """Latest run, coverage, reconciliation and the most recent runs (1-100)."""
        run_limit = clamp_page_size(limit_runs, MAX_ETL_RUNS, DEFAULT_ETL_RUNS)
        latest_run, coverage, snapshots, runs = await asyncio.gather(
            _in_thread(self.storage.latest_sync_run),
            _in_thread(self.storage.coverage),
            _in_thread(self.reconciler.latest_by_channel),
            _in_thread(self.storage.list_sync_runs, run_limit),
        )
        return EtlQualityView(
            generated_at=self.clock(),
            latest_run=latest_run,
            coverage=coverage,
            reconciliation_status=derive_status(s.status for s in snapshots),
            reconciliation_by_channel=snapshots,
            runs=runs,
        )

    # =========================================================================
    # Listings
    # =========================================================================

    async def list_posts(
        self,
        filters: DashboardFilters,
        sort: SortMode = SortMode.PUBLISHED_AT_DESC,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Page:
        """
        One page of posts in keyset order.

        A legacy offset cursor is honoured once; every cursor handed back is
        keyset v2 for ``sort``.

        Raises:
            InvalidRequestError: malformed cursor or cursor for another sort
        """
        decoded = decode_keyset_cursor(cursor, sort)
        page_size = clamp_page_size(limit)
        window = self.resolver.resolve(filters)
        after = decoded if isinstance(decoded, KeysetCursor) else None
        offset = decoded.offset if isinstance(decoded, OffsetCursor) else 0

        fetched = await _in_thread(
            self.storage.fetch_posts,
            filters,
            window.start,
            window.end,
            sort,
            page_size + 1,
            after=after,
            offset=offset,
        )
        return build_page(fetched, page_size, lambda post: cursor_for(post, sort))

    async def list_comments(
        self,
        post_id: str,
        filters: Optional[CommentFilters] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Page:
        return await _in_thread(self.comments.list_comments, post_id, filters, limit, cursor)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def update_settings(
        self, patch: SettingsPatch, actor_user_id: str, request_id: Optional[str] = None
    ) -> DashboardSetting:
        return await _in_thread(self.settings.update, patch, actor_user_id, request_id)

    async def override_comment(
        self,
        comment_id: str,
        patch: CommentOverridePatch,
        actor_user_id: str,
        request_id: Optional[str] = None,
    ) -> CommentRecord:
        return await _in_thread(self.comments.override, comment_id, patch, actor_user_id, request_id)

    async def upsert_er_targets(
        self,
        year: int,
        targets: list[ErTargetInput],
        actor_user_id: str,
        request_id: Optional[str] = None,
    ) -> list[KpiTarget]:
        return await _in_thread(
            self.er_targets.upsert_targets, year, targets, actor_user_id, request_id
        )


def heatmap_value(totals: GroupTotals, metric: HeatmapMetric) -> float:
    if metric == HeatmapMetric.ER:
        return totals.er_global
    if metric == HeatmapMetric.ENGAGEMENT_TOTAL:
        return totals.engagement
    if metric == HeatmapMetric.LIKES:
        return totals.likes
    if metric == HeatmapMetric.COMMENTS:
        return totals.comments
    if metric == HeatmapMetric.SHARES:
        return totals.shares
    if metric == HeatmapMetric.VIEWS:
        return totals.views
    return pct(totals.views, totals.exposure)


def scatter_labels(post: PostRecord, dimension: ScatterDimension) -> list[str]:
    """Labels a post contributes to; tag dimensions fall back to a placeholder label."""
    if dimension == ScatterDimension.POST_TYPE:
        return [post.post_type or "unknown"]
    if dimension == ScatterDimension.CHANNEL:
        return [post.channel.value]
    if dimension == ScatterDimension.ACCOUNT:
        return [post.account_name]
    if dimension == ScatterDimension.CAMPAIGN:
        return [post.campaign_key or "sin_campana"]
    if dimension == ScatterDimension.STRATEGY:
        return post.strategy_keys or ["sin_estrategia"]
    if dimension == ScatterDimension.TOPIC:
        return post.topics or ["sin_tema"]
    return post.hashtags or ["sin_hashtag"]
