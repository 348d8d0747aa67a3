"""
Reconciliation Status Deriver.

Compares per-channel row counts reported by the source side of an ETL run
against what the store holds, persists one snapshot per channel per run,
and folds the latest snapshot statuses into a single overall status:

    error if any error, else warning if any warning, else ok if any ok, else unknown

Version: reconciliation_v1
"""

from typing import Iterable, Optional

import structlog

from socialpulse.models.enums import Channel, ReconciliationStatus
from socialpulse.models.reconciliation import ChannelRowStats, ReconciliationSnapshot
from socialpulse.storage.base import StorageBackend
from socialpulse.utils.clock import Clock, utc_now

from .formulas import pct, round_metric

logger = structlog.get_logger()

STATUS_PRECEDENCE = (
    ReconciliationStatus.ERROR,
    ReconciliationStatus.WARNING,
    ReconciliationStatus.OK,
)


def derive_status(statuses: Iterable[ReconciliationStatus]) -> ReconciliationStatus:
    """Fold per-channel statuses into one."""
    seen = set(statuses)
    for status in STATUS_PRECEDENCE:
        if status in seen:
            return status
    return ReconciliationStatus.UNKNOWN


def build_snapshot(
    run_id: str,
    channel: Channel,
    source: Optional[ChannelRowStats],
    store: Optional[ChannelRowStats],
    clock: Clock = utc_now,
) -> ReconciliationSnapshot:
    """
    Compare one channel's source and store stats.

    ``delta_rows = store_rows - source_rows``; the snapshot is ok when the
    counts match and a warning otherwise.
    """
    source = source or ChannelRowStats(channel=channel)
    store = store or ChannelRowStats(channel=channel)
    delta = store.rows - source.rows
    return ReconciliationSnapshot(
        run_id=run_id,
        channel=channel,
        source_rows=source.rows,
        store_rows=store.rows,
        delta_rows=delta,
        source_min_date=source.min_date,
        source_max_date=source.max_date,
        store_min_date=store.min_date,
        store_max_date=store.max_date,
        status=ReconciliationStatus.OK if delta == 0 else ReconciliationStatus.WARNING,
        details={"delta_pct": round_metric(pct(delta, source.rows))},
        created_at=clock(),
    )


class Reconciler:
    """
    Writes per-run reconciliation snapshots and reads the overall status.

    Example:
        >>> reconciler = Reconciler(storage)
        >>> snapshots = reconciler.reconcile(run_id, source_stats)
        >>> reconciler.overall_status()
        <ReconciliationStatus.OK: 'ok'>
    """

    def __init__(self, storage: StorageBackend, clock: Clock = utc_now):
        self.storage = storage
        self.clock = clock
        self.logger = structlog.get_logger()

    def reconcile(
        self, run_id: str, source_stats: list[ChannelRowStats]
    ) -> list[ReconciliationSnapshot]:
        """Replace the run's snapshots with a fresh comparison for every channel."""
        source_by_channel = {stats.channel: stats for stats in source_stats}
        store_by_channel = self.storage.channel_row_stats()
        snapshots = [
            build_snapshot(
                run_id,
                channel,
                source_by_channel.get(channel),
                store_by_channel.get(channel),
                self.clock,
            )
            for channel in Channel
        ]
        with self.storage.transaction():
            self.storage.replace_reconciliation_snapshots(run_id, snapshots)

        self.logger.info(
            "reconciliation_recorded",
            run_id=run_id,
            status=derive_status(s.status for s in snapshots).value,
            mismatched=[s.channel.value for s in snapshots if s.delta_rows != 0],
        )
        return snapshots

    def latest_by_channel(self) -> list[ReconciliationSnapshot]:
        """Latest snapshot per channel, chosen by (created_at DESC, snapshot_id DESC)."""
        return self.storage.latest_reconciliation_by_channel()

    def overall_status(self) -> ReconciliationStatus:
        return derive_status(s.status for s in self.latest_by_channel())
