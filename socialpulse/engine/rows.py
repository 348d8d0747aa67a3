"""
Bounded full-window row reads.

Facets, heatmap, scatter, breakdowns and baselines read every row of a
window. Reads go through keyset batches of ``scan_batch_size`` rows up to a
hard cap of ``scan_max_rows``, one batch at a time.
"""

from datetime import datetime
from typing import Optional

from socialpulse.config import get_settings
from socialpulse.models.enums import SortMode
from socialpulse.models.metrics import DashboardFilters, MetricRow, PostRecord
from socialpulse.storage.base import StorageBackend

from .pagination import KeysetScanner


class RowReader:
    """Scans metric rows or full posts for a filtered window."""

    def __init__(
        self,
        storage: StorageBackend,
        batch_size: Optional[int] = None,
        max_rows: Optional[int] = None,
    ):
        settings = get_settings()
        self.storage = storage
        self.scanner = KeysetScanner(
            batch_size=batch_size or settings.scan_batch_size,
            max_rows=max_rows or settings.scan_max_rows,
            sort=SortMode.PUBLISHED_AT_DESC,
        )

    def metric_rows(
        self, filters: DashboardFilters, start: datetime, end: datetime
    ) -> list[MetricRow]:
        return list(
            self.scanner.scan(
                lambda after, limit: self.storage.fetch_metric_rows(
                    filters, start, end, SortMode.PUBLISHED_AT_DESC, limit, after=after
                )
            )
        )

    def posts(self, filters: DashboardFilters, start: datetime, end: datetime) -> list[PostRecord]:
        return list(
            self.scanner.scan(
                lambda after, limit: self.storage.fetch_posts(
                    filters, start, end, SortMode.PUBLISHED_AT_DESC, limit, after=after
                )
            )
        )
