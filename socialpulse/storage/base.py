"""
Abstract storage interface for the social analytics engine.

The engine never talks to a database directly. Every read and write it needs
is named here, so the relational store can be swapped without touching the
engine. Implementations must:

- run every write issued inside ``transaction()`` atomically (nested calls
  join the outer transaction; any exception rolls back and re-raises)
- return timezone-aware UTC datetimes
- order listings exactly as documented, with a unique id as final tie-break
- raise ``StorageError`` chained from the driver error on failure
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from socialpulse.models.audit import AuditEntry
from socialpulse.models.enums import Channel, SortMode, UpsertStatus
from socialpulse.models.incidents import Incident
from socialpulse.models.metrics import (
    CommentFilters,
    CommentInput,
    CommentOverride,
    CommentRecord,
    DashboardFilters,
    MetricRow,
    PostInput,
    PostRecord,
)
from socialpulse.models.pagination import KeysetCursor
from socialpulse.models.reconciliation import ChannelRowStats, Coverage, ReconciliationSnapshot
from socialpulse.models.settings import DashboardSetting
from socialpulse.models.sync import SyncRun
from socialpulse.models.targets import KpiTarget


class StorageCapabilities(BaseModel):
    """Optional schema features, detected once when the store is opened."""

    hashtags: bool = False
    topics: bool = False


class StorageBackend(ABC):
    """
    Abstract base class for all storage implementations.

    Defines the complete contract for posts, comments, sync runs, incidents,
    dashboard settings, KPI targets, reconciliation snapshots and the audit
    log.
    """

    # =========================================================================
    # Transactions and capabilities
    # =========================================================================

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Open a transaction scope for the calling thread.

        Writes issued inside the scope commit together on normal exit and roll
        back on any exception, which is re-raised. Entering while a transaction
        is already open on the same thread joins it.
        """
        pass

    @property
    @abstractmethod
    def capabilities(self) -> StorageCapabilities:
        """Optional tables present in this store (hashtag and topic tags)."""
        pass

    # =========================================================================
    # Posts and metric rows
    # =========================================================================

    @abstractmethod
    def fetch_metric_rows(
        self,
        filters: DashboardFilters,
        start: datetime,
        end: datetime,
        sort: SortMode,
        limit: int,
        after: Optional[KeysetCursor] = None,
        offset: int = 0,
    ) -> list[MetricRow]:
        """
        Fetch metric rows published in ``[start, end)`` matching ``filters``.

        Rows are ordered by the full keyset tuple of ``sort`` descending. When
        ``after`` is given only rows strictly after that position are
        returned; otherwise ``offset`` rows are skipped.

        Args:
            filters: Dashboard filters (hashtag/topic ignored when unsupported)
            start: Inclusive lower bound on effective published time
            end: Exclusive upper bound on effective published time
            sort: Keyset order
            limit: Maximum rows returned
            after: Keyset position of the last row already served
            offset: Rows to skip when no keyset position is given

        Returns:
            Up to ``limit`` MetricRow objects

        Raises:
            StorageError: If the query fails
        """
        pass

    @abstractmethod
    def fetch_posts(
        self,
        filters: DashboardFilters,
        start: datetime,
        end: datetime,
        sort: SortMode,
        limit: int,
        after: Optional[KeysetCursor] = None,
        offset: int = 0,
    ) -> list[PostRecord]:
        """Same as ``fetch_metric_rows`` but returning full post records."""
        pass

    @abstractmethod
    def get_post(self, post_id: str) -> Optional[PostRecord]:
        """Read one post by id, or None."""
        pass

    @abstractmethod
    def upsert_post(self, post: PostInput) -> tuple[UpsertStatus, str]:
        """
        Insert or update a post keyed on (channel, external_post_id).

        Hashtags are extracted from title and text when the store supports
        them; topics are stored when supported.

        Returns:
            (created | updated, post_id)

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def channel_row_stats(self) -> dict[Channel, ChannelRowStats]:
        """Stored post count and effective published range per channel."""
        pass

    @abstractmethod
    def coverage(self) -> Coverage:
        """Date span of stored posts and of the latest source snapshots."""
        pass

    # =========================================================================
    # Comments
    # =========================================================================

    @abstractmethod
    def list_comments(
        self,
        post_id: str,
        filters: CommentFilters,
        limit: int,
        offset: int = 0,
    ) -> list[CommentRecord]:
        """
        List a post's comments ordered by (published_at or created_at DESC, comment_id DESC).

        Args:
            post_id: Parent post
            filters: Optional sentiment / spam / relatedness filters
            limit: Maximum rows returned
            offset: Rows to skip

        Returns:
            Up to ``limit`` CommentRecord objects
        """
        pass

    @abstractmethod
    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        """Read one comment by id, or None."""
        pass

    @abstractmethod
    def update_comment(self, comment: CommentRecord) -> None:
        """Overwrite the moderation fields of an existing comment."""
        pass

    @abstractmethod
    def upsert_comment(self, comment: CommentInput) -> tuple[UpsertStatus, str]:
        """
        Insert or update a comment keyed on its external mention id.

        A sentiment set manually is kept when the comment is re-ingested.

        Returns:
            (created | updated, comment_id)
        """
        pass

    @abstractmethod
    def insert_comment_override(self, override: CommentOverride) -> str:
        """Append a manual moderation record. Returns its id."""
        pass

    # =========================================================================
    # Sync runs
    # =========================================================================

    @abstractmethod
    def insert_sync_run(self, run: SyncRun) -> str:
        """Persist a new run. Returns its id."""
        pass

    @abstractmethod
    def update_sync_run(self, run: SyncRun) -> None:
        """Overwrite the mutable state of an existing run."""
        pass

    @abstractmethod
    def get_sync_run(self, run_id: str) -> Optional[SyncRun]:
        """Read one run by id, or None."""
        pass

    @abstractmethod
    def list_sync_runs(self, limit: int, offset: int = 0) -> list[SyncRun]:
        """Runs ordered by (queued_at DESC, created_at DESC, run_id DESC)."""
        pass

    @abstractmethod
    def latest_sync_run(self) -> Optional[SyncRun]:
        """First run in ``list_sync_runs`` order, or None."""
        pass

    # =========================================================================
    # Incidents
    # =========================================================================

    @abstractmethod
    def find_active_incident(self, signal_version: str) -> Optional[Incident]:
        """
        Most recently updated active incident for a signal version.

        Active means open, acknowledged or in_progress.
        """
        pass

    @abstractmethod
    def insert_incident(self, incident: Incident) -> str:
        """Persist a new incident. Returns its id."""
        pass

    @abstractmethod
    def update_incident(self, incident: Incident) -> None:
        """Overwrite the mutable state of an existing incident."""
        pass

    @abstractmethod
    def list_active_incidents(self, signal_version: str, limit: int = 30) -> list[Incident]:
        """Active incidents ordered by (updated_at DESC, incident_id DESC)."""
        pass

    # =========================================================================
    # Dashboard settings and KPI targets
    # =========================================================================

    @abstractmethod
    def read_dashboard_setting(self) -> Optional[DashboardSetting]:
        """Read the settings singleton, or None before first initialization."""
        pass

    @abstractmethod
    def insert_dashboard_setting(self, setting: DashboardSetting) -> None:
        """Create the settings singleton."""
        pass

    @abstractmethod
    def update_dashboard_setting(self, setting: DashboardSetting) -> None:
        """Overwrite the settings singleton."""
        pass

    @abstractmethod
    def read_kpi_targets(self, year: int, channels: list[Channel]) -> dict[Channel, KpiTarget]:
        """Stored ER targets for ``year`` keyed by channel; absent channels are omitted."""
        pass

    @abstractmethod
    def upsert_kpi_target(self, target: KpiTarget) -> None:
        """Insert or replace the target for (year, channel)."""
        pass

    # =========================================================================
    # Reconciliation
    # =========================================================================

    @abstractmethod
    def replace_reconciliation_snapshots(
        self, run_id: str, snapshots: list[ReconciliationSnapshot]
    ) -> int:
        """
        Replace every snapshot of a run.

        Returns:
            Number of snapshots written
        """
        pass

    @abstractmethod
    def latest_reconciliation_by_channel(self) -> list[ReconciliationSnapshot]:
        """Latest snapshot per channel by (created_at DESC, snapshot_id DESC)."""
        pass

    # =========================================================================
    # Audit
    # =========================================================================

    @abstractmethod
    def append_audit(self, entry: AuditEntry) -> str:
        """Append an audit entry. Returns its id."""
        pass

    @abstractmethod
    def read_audit_entries(
        self, action: Optional[str] = None, limit: int = 100
    ) -> list[AuditEntry]:
        """Audit entries ordered by (created_at DESC, audit_id DESC)."""
        pass
