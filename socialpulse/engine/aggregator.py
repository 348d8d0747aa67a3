"""
Metric Aggregator.

Sums MetricRows by an arbitrary grouping key and derives the KPI ratios
(ER variants, CTR, view rate, interaction shares, net sentiment, active
risk, social health score) plus share of voice. This is the single
aggregation engine used by every dashboard view; optional data such as
hashtags and topics arrive as extra labels, never as a separate code path.

Version: metric_aggregator_v1
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from socialpulse.models.enums import Channel, Sentiment
from socialpulse.models.metrics import MetricRow
from socialpulse.models.views import Kpis

from . import formulas
from .formulas import round_metric


@dataclass
class GroupTotals:
    """Running sums for one group of rows."""

    posts: int = 0
    exposure: float = 0.0
    engagement: float = 0.0
    impressions: float = 0.0
    reach: float = 0.0
    clicks: float = 0.0
    likes: float = 0.0
    comments: float = 0.0
    shares: float = 0.0
    views: float = 0.0
    positive: int = 0
    negative: int = 0
    neutral: int = 0
    unknown: int = 0

    def add(self, row: MetricRow) -> None:
        self.posts += 1
        self.exposure += row.exposure
        self.engagement += row.engagement
        self.impressions += row.impressions
        self.reach += row.reach
        self.clicks += row.clicks
        self.likes += row.likes
        self.comments += row.comments
        self.shares += row.shares
        self.views += row.views
        if row.sentiment == Sentiment.POSITIVE:
            self.positive += 1
        elif row.sentiment == Sentiment.NEGATIVE:
            self.negative += 1
        elif row.sentiment == Sentiment.NEUTRAL:
            self.neutral += 1
        else:
            self.unknown += 1

    @property
    def classified(self) -> int:
        return self.positive + self.negative + self.neutral

    @property
    def er_global(self) -> float:
        return formulas.er_global(self.engagement, self.exposure)

    @property
    def ctr(self) -> float:
        return formulas.ctr(self.clicks, self.impressions, self.reach, self.exposure)

    @property
    def er_impressions(self) -> float:
        return formulas.er_impressions(self.engagement, self.impressions, self.reach, self.exposure)

    @property
    def er_reach(self) -> float:
        return formulas.er_reach(self.engagement, self.reach, self.exposure)

    @property
    def view_rate(self) -> float:
        return formulas.view_rate(self.views, self.exposure)

    @property
    def interaction_shares(self) -> tuple[float, float, float]:
        return formulas.interaction_shares(self.likes, self.comments, self.shares)

    @property
    def sentimiento_neto(self) -> float:
        return formulas.sentimiento_neto(self.positive, self.negative, self.classified)

    @property
    def riesgo_activo(self) -> float:
        return formulas.riesgo_activo(self.negative, self.classified)

    def health_score(self, previous_exposure: float) -> float:
        return formulas.social_health_score(
            self.sentimiento_neto, self.exposure, previous_exposure, self.riesgo_activo
        )


@dataclass
class ShareOfVoice:
    """Summed share-of-voice contributions per account and per channel."""

    by_account: dict[str, float] = field(default_factory=dict)
    by_channel: dict[Channel, float] = field(default_factory=dict)
    total: float = 0.0

    def account_pct(self, account_name: Optional[str]) -> float:
        if account_name is None:
            return 0.0
        return formulas.pct(self.by_account.get(account_name, 0.0), self.total)

    def channel_pct(self, channel: Channel) -> float:
        return formulas.pct(self.by_channel.get(channel, 0.0), self.total)

    def top_account(self) -> Optional[str]:
        """Highest contributor; ties go to the account seen first."""
        best: Optional[str] = None
        for name, contribution in self.by_account.items():
            if best is None or contribution > self.by_account[best]:
                best = name
        return best

    def focus_account(self, configured: Optional[str]) -> Optional[str]:
        """Configured focus account when set, else the top contributor."""
        if configured and configured.strip():
            return configured.strip()
        return self.top_account()


class MetricAggregator:
    """
    Groups metric rows and derives KPIs.

    Grouping preserves first-seen key order so callers can apply their own
    documented sort afterwards.

    Example:
        >>> aggregator = MetricAggregator()
        >>> by_channel = aggregator.group(rows, lambda row: row.channel)
        >>> kpis = aggregator.kpis(aggregator.totals(rows), previous_exposure=1200.0)
    """

    def totals(self, rows: Iterable[MetricRow]) -> GroupTotals:
        totals = GroupTotals()
        for row in rows:
            totals.add(row)
        return totals

    def group(
        self, rows: Iterable[MetricRow], key: Callable[[MetricRow], object]
    ) -> "OrderedDict[object, GroupTotals]":
        groups: "OrderedDict[object, GroupTotals]" = OrderedDict()
        for row in rows:
            k = key(row)
            if k not in groups:
                groups[k] = GroupTotals()
            groups[k].add(row)
        return groups

    def group_labels(
        self, rows: Iterable[MetricRow], labels: Callable[[MetricRow], list[str]]
    ) -> "OrderedDict[str, GroupTotals]":
        """Group where a row may carry several labels; it is counted once per label."""
        groups: "OrderedDict[str, GroupTotals]" = OrderedDict()
        for row in rows:
            for label in labels(row):
                if label not in groups:
                    groups[label] = GroupTotals()
                groups[label].add(row)
        return groups

    def share_of_voice(self, rows: Iterable[MetricRow]) -> ShareOfVoice:
        rows = list(rows)
        max_exposure = max([row.exposure for row in rows] + [1.0])
        sov = ShareOfVoice()
        for row in rows:
            contribution = formulas.sov_contribution(row.source_score, row.exposure, max_exposure)
            sov.total += contribution
            sov.by_account[row.account_name] = sov.by_account.get(row.account_name, 0.0) + contribution
            sov.by_channel[row.channel] = sov.by_channel.get(row.channel, 0.0) + contribution
        return sov

    def kpis(
        self,
        totals: GroupTotals,
        previous_exposure: float,
        focus_account: Optional[str] = None,
        focus_sov: float = 0.0,
    ) -> Kpis:
        """Rounded KPI record for one group."""
        likes_share, comments_share, shares_share = totals.interaction_shares
        return Kpis(
            posts=totals.posts,
            exposure_total=round_metric(totals.exposure),
            engagement_total=round_metric(totals.engagement),
            impressions_total=round_metric(totals.impressions),
            reach_total=round_metric(totals.reach),
            clicks_total=round_metric(totals.clicks),
            likes_total=round_metric(totals.likes),
            comments_total=round_metric(totals.comments),
            shares_total=round_metric(totals.shares),
            views_total=round_metric(totals.views),
            er_global=round_metric(totals.er_global),
            er_impressions=round_metric(totals.er_impressions),
            er_reach=round_metric(totals.er_reach),
            ctr=round_metric(totals.ctr),
            view_rate=round_metric(totals.view_rate),
            likes_share=round_metric(likes_share),
            comments_share=round_metric(comments_share),
            shares_share=round_metric(shares_share),
            classified_items=totals.classified,
            positive=totals.positive,
            negative=totals.negative,
            neutral=totals.neutral,
            unknown=totals.unknown,
            sentimiento_neto=round_metric(totals.sentimiento_neto),
            riesgo_activo=round_metric(totals.riesgo_activo),
            shs=round_metric(totals.health_score(previous_exposure)),
            focus_account=focus_account,
            focus_sov=round_metric(focus_sov),
        )
