"""
ER Target Calculator.

Derives a yearly engagement-rate target per channel from the prior calendar
year:

    baseline   = mean of monthly ER over the months of the prior year that have posts
    momentum   = (ER_Q4 - ER_Q1) / max(ER_Q1, 0.01)
    growth     = clamp(0.5 * max(momentum, 0) + 0.05, 0.03, 0.18)
    autoTarget = baseline * (1 + growth)

Months and quarters are local calendar periods. A stored manual target
overrides the auto target. Upserts persist baseline, momentum and growth
alongside the effective target for audit.

Version: er_targets_v1
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

import structlog

from socialpulse.errors import InvalidRequestError
from socialpulse.models.audit import AuditEntry
from socialpulse.models.enums import Channel, TargetSource
from socialpulse.models.metrics import DashboardFilters, MetricRow
from socialpulse.models.targets import ErTargetInput, ErTargetItem, ErTargetsView, KpiTarget
from socialpulse.storage.base import StorageBackend
from socialpulse.utils.clock import Clock, utc_now
from socialpulse.utils.ids import require_uuid

from .aggregator import GroupTotals
from .bucketing import TimeBucketer
from .formulas import clamp, progress_pct, round_metric
from .rows import RowReader
from .windows import utc_midnight

logger = structlog.get_logger()

MIN_AUTO_GROWTH = 0.03
MAX_AUTO_GROWTH = 0.18
MIN_TARGET_YEAR = 2000
MAX_TARGET_YEAR = 2100


def auto_growth_pct(momentum: float) -> float:
    """Growth applied to the baseline; always within [0.03, 0.18]."""
    return clamp(0.5 * max(momentum, 0.0) + 0.05, MIN_AUTO_GROWTH, MAX_AUTO_GROWTH)


def momentum_between(er_q1: float, er_q4: float) -> float:
    return (er_q4 - er_q1) / max(er_q1, 0.01)


@dataclass
class ChannelHistory:
    """Prior-year totals for one channel, by local month (1-12)."""

    months: dict[int, GroupTotals] = field(default_factory=dict)

    def add(self, month: int, row: MetricRow) -> None:
        self.months.setdefault(month, GroupTotals()).add(row)

    def quarter(self, first_month: int) -> GroupTotals:
        totals = GroupTotals()
        for month in range(first_month, first_month + 3):
            stats = self.months.get(month)
            if stats is None:
                continue
            totals.exposure += stats.exposure
            totals.engagement += stats.engagement
        return totals

    @property
    def baseline(self) -> float:
        if not self.months:
            return 0.0
        return sum(stats.er_global for stats in self.months.values()) / len(self.months)

    @property
    def momentum(self) -> float:
        return momentum_between(self.quarter(1).er_global, self.quarter(10).er_global)


@dataclass
class AutoTarget:
    baseline: float
    momentum: float
    growth: float

    @property
    def target(self) -> float:
        return self.baseline * (1 + self.growth)


class ErTargetCalculator:
    """
    Pure ER target computation.

    Example:
        >>> calculator = ErTargetCalculator(TimeBucketer())
        >>> autos = calculator.auto_targets(prior_year_rows, list(Channel))
        >>> view = calculator.build(2026, list(Channel), autos, current_rows, stored={})
    """

    def __init__(self, bucketer: Optional[TimeBucketer] = None):
        self.bucketer = bucketer or TimeBucketer()

    def history(self, rows: Iterable[MetricRow]) -> dict[Channel, ChannelHistory]:
        histories: dict[Channel, ChannelHistory] = {}
        for row in rows:
            histories.setdefault(row.channel, ChannelHistory()).add(
                self.bucketer.local_month(row.published_at), row
            )
        return histories

    def auto_targets(
        self, prior_year_rows: Iterable[MetricRow], channels: list[Channel]
    ) -> dict[Channel, AutoTarget]:
        histories = self.history(prior_year_rows)
        autos: dict[Channel, AutoTarget] = {}
        for channel in channels:
            history = histories.get(channel, ChannelHistory())
            momentum = history.momentum
            autos[channel] = AutoTarget(
                baseline=history.baseline, momentum=momentum, growth=auto_growth_pct(momentum)
            )
        return autos

    def build(
        self,
        year: int,
        channels: list[Channel],
        autos: dict[Channel, AutoTarget],
        current_rows: Iterable[MetricRow],
        stored: dict[Channel, KpiTarget],
    ) -> ErTargetsView:
        current: dict[Channel, GroupTotals] = {}
        for row in current_rows:
            current.setdefault(row.channel, GroupTotals()).add(row)

        items = []
        for channel in channels:
            auto = autos[channel]
            stored_target = stored.get(channel)
            manual = stored_target is not None and stored_target.source == TargetSource.MANUAL
            target = stored_target.target_er if manual else auto.target
            current_er = current.get(channel, GroupTotals()).er_global
            items.append(
                ErTargetItem(
                    channel=channel,
                    baseline_er=round_metric(
                        stored_target.baseline_er if stored_target else auto.baseline
                    ),
                    momentum=round_metric(auto.momentum),
                    auto_growth_pct=round_metric(auto.growth),
                    auto_target_er=round_metric(auto.target),
                    target_er=round_metric(target),
                    current_er=round_metric(current_er),
                    progress_pct=round_metric(progress_pct(current_er, target)),
                    gap=round_metric(current_er - target),
                    source=TargetSource.MANUAL if manual else TargetSource.AUTO,
                    override_reason=stored_target.override_reason if manual else None,
                )
            )
        return ErTargetsView(year=year, baseline_year=year - 1, items=items)


class ErTargetService:
    """
    Reads and upserts ER targets against storage.

    Attributes:
        storage: Storage backend
        calculator: Pure target calculator
        reader: Bounded row scanner for baseline and current rows
    """

    def __init__(
        self,
        storage: StorageBackend,
        calculator: Optional[ErTargetCalculator] = None,
        reader: Optional[RowReader] = None,
        clock: Clock = utc_now,
    ):
        self.storage = storage
        self.calculator = calculator or ErTargetCalculator()
        self.reader = reader or RowReader(storage)
        self.clock = clock
        self.logger = structlog.get_logger()

    def prior_year_rows(self, year: int, filters: Optional[DashboardFilters] = None) -> list[MetricRow]:
        start = utc_midnight(date(year - 1, 1, 1))
        end = utc_midnight(date(year, 1, 1))
        return self.reader.metric_rows(filters or DashboardFilters(), start, end)

    def compute(
        self,
        year: int,
        channels: list[Channel],
        prior_year_rows: list[MetricRow],
        current_rows: list[MetricRow],
    ) -> ErTargetsView:
        autos = self.calculator.auto_targets(prior_year_rows, channels)
        stored = self.storage.read_kpi_targets(year, channels)
        return self.calculator.build(year, channels, autos, current_rows, stored)

    def get_targets(
        self,
        year: int,
        filters: DashboardFilters,
        window_start: datetime,
        window_end: datetime,
    ) -> ErTargetsView:
        validate_year(year)
        channels = filters.channels or list(Channel)
        prior = self.prior_year_rows(year, filters)
        current = self.reader.metric_rows(filters, window_start, window_end)
        return self.compute(year, channels, prior, current)

    def upsert_targets(
        self,
        year: int,
        targets: list[ErTargetInput],
        actor_user_id: str,
        request_id: Optional[str] = None,
    ) -> list[KpiTarget]:
        """
        Persist auto or manual targets for the listed channels in one transaction.

        Manual targets are floored at 0 and default to the auto target when no
        value is supplied. The override reason is kept only for manual entries.

        Raises:
            InvalidRequestError: bad actor, bad year or no channels
        """
        actor = require_uuid(actor_user_id, "actor_user_id")
        validate_year(year)
        if not targets:
            raise InvalidRequestError("At least one channel target is required")

        channels = list(dict.fromkeys(item.channel for item in targets))
        autos = self.calculator.auto_targets(self.prior_year_rows(year), channels)
        now = self.clock()

        written: list[KpiTarget] = []
        with self.storage.transaction():
            before = self.storage.read_kpi_targets(year, channels)
            for item in targets:
                auto = autos[item.channel]
                manual = item.source == TargetSource.MANUAL
                target_er = (
                    max(0.0, item.target_er if item.target_er is not None else auto.target)
                    if manual
                    else auto.target
                )
                record = KpiTarget(
                    year=year,
                    channel=item.channel,
                    baseline_er=round(auto.baseline, 4),
                    momentum=round(auto.momentum, 4),
                    auto_growth_pct=round(auto.growth, 4),
                    target_er=round(target_er, 4),
                    source=item.source,
                    override_reason=(item.override_reason or None) if manual else None,
                    updated_by_user_id=actor,
                    updated_at=now,
                )
                self.storage.upsert_kpi_target(record)
                written.append(record)

            self.storage.append_audit(
                AuditEntry(
                    actor_user_id=actor,
                    action="social_er_targets_updated",
                    resource_type="kpi_target",
                    resource_id=str(year),
                    request_id=request_id,
                    before={c.value: t.model_dump(mode="json") for c, t in before.items()},
                    after={t.channel.value: t.model_dump(mode="json") for t in written},
                    created_at=now,
                )
            )

        self.logger.info(
            "er_targets_upserted",
            year=year,
            channels=[c.value for c in channels],
            actor_user_id=actor,
        )
        return written


def validate_year(year: int) -> None:
    if not MIN_TARGET_YEAR <= year <= MAX_TARGET_YEAR:
        raise InvalidRequestError(
            "Target year out of range", details={"year": year}
        )
