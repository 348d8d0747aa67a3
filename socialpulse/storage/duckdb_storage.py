"""
DuckDB storage implementation for the social analytics engine.

One database is opened per storage instance; every thread works through its
own cursor on that database, so an in-memory database is shared by all
threads of the process.

Key features:
- Thread-local cursors on a single database
- Automatic schema creation (``CREATE TABLE IF NOT EXISTS``)
- Explicit ``BEGIN``/``COMMIT``/``ROLLBACK`` transactions, joined when nested
- Optional hashtag/topic tables detected once at startup
- JSON columns for phase boards, counters, payloads and audit snapshots
- Timestamps stored as naive UTC in TIMESTAMP columns
"""

import json
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional
from uuid import uuid4

import duckdb
import structlog

from socialpulse.config import get_settings
from socialpulse.errors import StorageError
from socialpulse.models.audit import AuditEntry
from socialpulse.models.enums import (
    Channel,
    IncidentStatus,
    Sentiment,
    SentimentSource,
    SortMode,
    UpsertStatus,
)
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
    extract_hashtags,
)
from socialpulse.models.pagination import KeysetCursor
from socialpulse.models.reconciliation import ChannelRowStats, Coverage, ReconciliationSnapshot
from socialpulse.models.settings import DashboardSetting
from socialpulse.models.sync import PhaseBoard, RunCounters, SyncRun
from socialpulse.models.targets import KpiTarget
from socialpulse.utils.clock import to_naive_utc, utc_now

from .base import StorageBackend, StorageCapabilities

logger = structlog.get_logger(__name__)

SETTING_ID = "default"

EFFECTIVE_PUBLISHED = "COALESCE(p.published_at, p.created_at)"

METRIC_FIELDS = [
    "post_id",
    "channel",
    "account_name",
    "exposure",
    "engagement",
    "impressions",
    "reach",
    "clicks",
    "likes",
    "comments",
    "shares",
    "views",
    "source_score",
    "sentiment",
]

POST_FIELDS = [
    "content_id",
    "external_post_id",
    "post_url",
    "post_type",
    "title",
    "text",
    "campaign_key",
    "created_at",
    "updated_at",
]

ORDER_BY = {
    SortMode.PUBLISHED_AT_DESC: f"{EFFECTIVE_PUBLISHED} DESC, p.post_id DESC",
    SortMode.EXPOSURE_DESC: f"p.exposure DESC, {EFFECTIVE_PUBLISHED} DESC, p.post_id DESC",
    SortMode.ENGAGEMENT_DESC: f"p.engagement DESC, {EFFECTIVE_PUBLISHED} DESC, p.post_id DESC",
}

SORT_COLUMNS = {
    SortMode.EXPOSURE_DESC: "p.exposure",
    SortMode.ENGAGEMENT_DESC: "p.engagement",
}

SYNC_RUN_FIELDS = [
    "run_id",
    "trigger_type",
    "status",
    "request_id",
    "queued_at",
    "started_at",
    "finished_at",
    "current_phase",
    "phases",
    "counters",
    "error_message",
    "created_at",
]

INCIDENT_FIELDS = [
    "incident_id",
    "signal_version",
    "severity",
    "status",
    "risk_score",
    "classified_items",
    "sla_due_at",
    "cooldown_until",
    "payload",
    "created_at",
    "updated_at",
]

SETTING_FIELDS = [
    "focus_account",
    "target_quarterly_sov_pp",
    "target_shs",
    "risk_threshold",
    "sentiment_drop_threshold",
    "er_drop_threshold",
    "alert_cooldown_minutes",
    "metadata",
    "updated_by_user_id",
    "created_at",
    "updated_at",
]

KPI_TARGET_FIELDS = [
    "year",
    "channel",
    "baseline_er",
    "momentum",
    "auto_growth_pct",
    "target_er",
    "source",
    "override_reason",
    "updated_by_user_id",
    "updated_at",
]

SNAPSHOT_FIELDS = [
    "snapshot_id",
    "run_id",
    "channel",
    "source_rows",
    "store_rows",
    "delta_rows",
    "source_min_date",
    "source_max_date",
    "store_min_date",
    "store_max_date",
    "status",
    "details",
    "created_at",
]

COMMENT_FIELDS = [
    "comment_id",
    "post_id",
    "external_comment_id",
    "author_name",
    "text",
    "sentiment",
    "sentiment_source",
    "is_spam",
    "related_to_post_text",
    "published_at",
    "created_at",
    "updated_at",
]

AUDIT_FIELDS = [
    "audit_id",
    "actor_user_id",
    "action",
    "resource_type",
    "resource_id",
    "request_id",
    "before",
    "after",
    "created_at",
]

TEST_TABLES = [
    "post_hashtags",
    "post_topics",
    "post_strategies",
    "comment_overrides",
    "comments",
    "posts",
    "sync_runs",
    "incidents",
    "dashboard_settings",
    "kpi_targets",
    "reconciliation_snapshots",
    "audit_log",
]


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


def _columns(fields: list[str]) -> str:
    return ", ".join(fields)


def _loads(raw: Optional[str], default: Any) -> Any:
    return json.loads(raw) if raw else default


def _keyset_clause(after: KeysetCursor, sort: SortMode) -> tuple[str, list[Any]]:
    """WHERE fragment selecting rows strictly after ``after`` in descending order."""
    secondary = to_naive_utc(datetime.fromisoformat(after.secondary))
    if sort == SortMode.PUBLISHED_AT_DESC:
        primary = to_naive_utc(datetime.fromisoformat(str(after.primary)))
        return (
            f"({EFFECTIVE_PUBLISHED} < ? OR ({EFFECTIVE_PUBLISHED} = ? AND p.post_id < ?))",
            [primary, primary, after.id],
        )
    column = SORT_COLUMNS[sort]
    primary = float(after.primary)
    return (
        f"({column} < ?"
        f" OR ({column} = ? AND {EFFECTIVE_PUBLISHED} < ?)"
        f" OR ({column} = ? AND {EFFECTIVE_PUBLISHED} = ? AND p.post_id < ?))",
        [primary, primary, secondary, primary, secondary, after.id],
    )


class DuckDBStorage(StorageBackend):
    """
    DuckDB implementation of the storage backend.

    Attributes:
        db_path: Database file path, or ``:memory:``
        _root: Connection owning the database; threads use cursors derived from it
        _local: Thread-local cursor and transaction flag
        _lock: Guards schema initialization
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        enable_extended_schema: Optional[bool] = None,
        threads: Optional[int] = None,
    ):
        """
        Open (or create) the database and initialize its schema.

        Args:
            db_path: Path to the DuckDB file (default from settings); ``:memory:`` for tests
            enable_extended_schema: Create the hashtag/topic tables (default from settings)
            threads: DuckDB worker threads (default from settings)
        """
        settings = get_settings()
        self.db_path = db_path or settings.db_path
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._root = duckdb.connect(
                self.db_path, config={"threads": threads or settings.db_threads}
            )
        except duckdb.Error as e:
            logger.error("duckdb_connection_failed", db_path=self.db_path, error=str(e))
            raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

        if enable_extended_schema is None:
            enable_extended_schema = settings.enable_extended_schema
        self._initialize_schema(enable_extended_schema)
        self._capabilities = self._detect_capabilities()

        logger.info("duckdb_storage_initialized", db_path=self.db_path)

    # =========================================================================
    # Connection, schema and transactions
    # =========================================================================

    @contextmanager
    def _get_connection(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Get this thread's cursor on the shared database.

        Yields:
            DuckDB cursor instance
        """
        if not hasattr(self._local, "connection"):
            self._local.connection = self._root.cursor()
            logger.debug("duckdb_cursor_created", thread_id=threading.get_ident())
        yield self._local.connection

    def _initialize_schema(self, extended: bool) -> None:
        """
        Create all tables and indexes. Idempotent.

        Raises:
            StorageError: If schema creation fails
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS posts (
                            post_id VARCHAR PRIMARY KEY,
                            channel VARCHAR NOT NULL,
                            account_name VARCHAR NOT NULL,
                            external_post_id VARCHAR NOT NULL,
                            content_id VARCHAR,
                            post_url VARCHAR NOT NULL DEFAULT '',
                            post_type VARCHAR,
                            title VARCHAR NOT NULL DEFAULT '',
                            text VARCHAR,
                            published_at TIMESTAMP,
                            exposure DOUBLE NOT NULL DEFAULT 0,
                            engagement DOUBLE NOT NULL DEFAULT 0,
                            impressions DOUBLE NOT NULL DEFAULT 0,
                            reach DOUBLE NOT NULL DEFAULT 0,
                            clicks DOUBLE NOT NULL DEFAULT 0,
                            likes DOUBLE NOT NULL DEFAULT 0,
                            comments DOUBLE NOT NULL DEFAULT 0,
                            shares DOUBLE NOT NULL DEFAULT 0,
                            views DOUBLE NOT NULL DEFAULT 0,
                            source_score DOUBLE NOT NULL DEFAULT 0.5,
                            sentiment VARCHAR NOT NULL DEFAULT 'unknown',
                            campaign_key VARCHAR,
                            created_at TIMESTAMP NOT NULL,
                            updated_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_posts_external
                        ON posts(channel, external_post_id)
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS post_strategies (
                            post_id VARCHAR NOT NULL,
                            strategy_key VARCHAR NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS comments (
                            comment_id VARCHAR PRIMARY KEY,
                            post_id VARCHAR NOT NULL,
                            external_comment_id VARCHAR NOT NULL,
                            author_name VARCHAR,
                            text VARCHAR NOT NULL DEFAULT '',
                            sentiment VARCHAR NOT NULL DEFAULT 'unknown',
                            sentiment_source VARCHAR NOT NULL DEFAULT 'provider',
                            is_spam BOOLEAN NOT NULL DEFAULT FALSE,
                            related_to_post_text BOOLEAN NOT NULL DEFAULT TRUE,
                            published_at TIMESTAMP,
                            created_at TIMESTAMP NOT NULL,
                            updated_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_comments_post
                        ON comments(post_id)
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_comments_external
                        ON comments(external_comment_id)
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS comment_overrides (
                            override_id VARCHAR PRIMARY KEY,
                            comment_id VARCHAR NOT NULL,
                            actor_user_id VARCHAR NOT NULL,
                            is_spam BOOLEAN,
                            related_to_post_text BOOLEAN,
                            sentiment VARCHAR,
                            reason VARCHAR,
                            created_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS sync_runs (
                            run_id VARCHAR PRIMARY KEY,
                            trigger_type VARCHAR NOT NULL,
                            status VARCHAR NOT NULL,
                            request_id VARCHAR,
                            queued_at TIMESTAMP NOT NULL,
                            started_at TIMESTAMP,
                            finished_at TIMESTAMP,
                            current_phase VARCHAR,
                            phases JSON NOT NULL,
                            counters JSON NOT NULL,
                            error_message VARCHAR,
                            created_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS incidents (
                            incident_id VARCHAR PRIMARY KEY,
                            signal_version VARCHAR NOT NULL,
                            severity VARCHAR NOT NULL,
                            status VARCHAR NOT NULL,
                            risk_score DOUBLE NOT NULL,
                            classified_items INTEGER NOT NULL,
                            sla_due_at TIMESTAMP NOT NULL,
                            cooldown_until TIMESTAMP,
                            payload JSON,
                            created_at TIMESTAMP NOT NULL,
                            updated_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_incidents_signal
                        ON incidents(signal_version)
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS dashboard_settings (
                            setting_id VARCHAR PRIMARY KEY,
                            focus_account VARCHAR,
                            target_quarterly_sov_pp DOUBLE NOT NULL,
                            target_shs DOUBLE NOT NULL,
                            risk_threshold DOUBLE NOT NULL,
                            sentiment_drop_threshold DOUBLE NOT NULL,
                            er_drop_threshold DOUBLE NOT NULL,
                            alert_cooldown_minutes INTEGER NOT NULL,
                            metadata JSON,
                            updated_by_user_id VARCHAR,
                            created_at TIMESTAMP NOT NULL,
                            updated_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS kpi_targets (
                            year INTEGER NOT NULL,
                            channel VARCHAR NOT NULL,
                            baseline_er DOUBLE NOT NULL,
                            momentum DOUBLE NOT NULL,
                            auto_growth_pct DOUBLE NOT NULL,
                            target_er DOUBLE NOT NULL,
                            source VARCHAR NOT NULL,
                            override_reason VARCHAR,
                            updated_by_user_id VARCHAR,
                            updated_at TIMESTAMP NOT NULL,
                            PRIMARY KEY (year, channel)
                        )
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS reconciliation_snapshots (
                            snapshot_id VARCHAR PRIMARY KEY,
                            run_id VARCHAR NOT NULL,
                            channel VARCHAR NOT NULL,
                            source_rows BIGINT NOT NULL,
                            store_rows BIGINT NOT NULL,
                            delta_rows BIGINT NOT NULL,
                            source_min_date TIMESTAMP,
                            source_max_date TIMESTAMP,
                            store_min_date TIMESTAMP,
                            store_max_date TIMESTAMP,
                            status VARCHAR NOT NULL,
                            details JSON,
                            created_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_reconciliation_run
                        ON reconciliation_snapshots(run_id)
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS audit_log (
                            audit_id VARCHAR PRIMARY KEY,
                            actor_user_id VARCHAR NOT NULL,
                            action VARCHAR NOT NULL,
                            resource_type VARCHAR NOT NULL,
                            resource_id VARCHAR,
                            request_id VARCHAR,
                            before JSON,
                            after JSON,
                            created_at TIMESTAMP NOT NULL
                        )
                    """)

                    if extended:
                        conn.execute("""
                            CREATE TABLE IF NOT EXISTS post_hashtags (
                                post_id VARCHAR NOT NULL,
                                hashtag VARCHAR NOT NULL
                            )
                        """)

                        conn.execute("""
                            CREATE TABLE IF NOT EXISTS post_topics (
                                post_id VARCHAR NOT NULL,
                                topic VARCHAR NOT NULL
                            )
                        """)

                self._initialized = True
                logger.info("duckdb_schema_initialized", extended=extended)

            except duckdb.Error as e:
                logger.error("schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    def _detect_capabilities(self) -> StorageCapabilities:
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT table_name FROM information_schema.tables
                    WHERE table_name IN ('post_hashtags', 'post_topics')
                    """
                ).fetchall()
        except duckdb.Error as e:
            logger.error("capability_detection_failed", error=str(e))
            raise StorageError(f"Failed to detect capabilities: {e}") from e

        names = {row[0] for row in rows}
        capabilities = StorageCapabilities(
            hashtags="post_hashtags" in names, topics="post_topics" in names
        )
        logger.info(
            "storage_capabilities_detected",
            hashtags=capabilities.hashtags,
            topics=capabilities.topics,
        )
        return capabilities

    @property
    def capabilities(self) -> StorageCapabilities:
        return self._capabilities

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run the enclosed writes in one transaction on this thread's cursor.

        Raises:
            StorageError: If the transaction cannot begin or commit
        """
        if getattr(self._local, "in_transaction", False):
            yield
            return

        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN TRANSACTION")
            except duckdb.Error as e:
                logger.error("transaction_begin_failed", error=str(e))
                raise StorageError(f"Failed to begin transaction: {e}") from e

            self._local.in_transaction = True
            try:
                yield
            except BaseException:
                self._local.in_transaction = False
                conn.execute("ROLLBACK")
                logger.debug("transaction_rolled_back")
                raise

            self._local.in_transaction = False
            try:
                conn.execute("COMMIT")
            except duckdb.Error as e:
                logger.error("transaction_commit_failed", error=str(e))
                raise StorageError(f"Failed to commit transaction: {e}") from e

    def clear_for_testing(self) -> None:
        """
        Delete every row from every table. Only allowed with TESTING=true.
        """
        if not get_settings().testing:
            raise StorageError("clear_for_testing requires TESTING=true")
        try:
            with self._get_connection() as conn:
                for table in TEST_TABLES:
                    if table == "post_hashtags" and not self._capabilities.hashtags:
                        continue
                    if table == "post_topics" and not self._capabilities.topics:
                        continue
                    conn.execute(f"DELETE FROM {table}")
        except duckdb.Error as e:
            logger.error("clear_for_testing_failed", error=str(e))
            raise StorageError(f"Failed to clear tables: {e}") from e

    def close(self) -> None:
        self._root.close()

    # =========================================================================
    # Posts and metric rows
    # =========================================================================

    def _filter_clause(
        self, filters: DashboardFilters, start: datetime, end: datetime
    ) -> tuple[list[str], list[Any]]:
        clauses = [f"{EFFECTIVE_PUBLISHED} >= ?", f"{EFFECTIVE_PUBLISHED} < ?"]
        params: list[Any] = [to_naive_utc(start), to_naive_utc(end)]

        def any_of(column: str, values: list[str]) -> None:
            clauses.append(f"{column} IN ({_placeholders(values)})")
            params.extend(values)

        if filters.channels:
            any_of("p.channel", [channel.value for channel in filters.channels])
        if filters.accounts:
            any_of("p.account_name", filters.accounts)
        if filters.post_types:
            any_of("p.post_type", filters.post_types)
        if filters.campaigns:
            any_of("p.campaign_key", filters.campaigns)
        if filters.strategies:
            clauses.append(
                "EXISTS (SELECT 1 FROM post_strategies s WHERE s.post_id = p.post_id"
                f" AND s.strategy_key IN ({_placeholders(filters.strategies)}))"
            )
            params.extend(filters.strategies)
        if filters.hashtags and self._capabilities.hashtags:
            clauses.append(
                "EXISTS (SELECT 1 FROM post_hashtags h WHERE h.post_id = p.post_id"
                f" AND h.hashtag IN ({_placeholders(filters.hashtags)}))"
            )
            params.extend(filters.hashtags)
        if filters.topics and self._capabilities.topics:
            clauses.append(
                "EXISTS (SELECT 1 FROM post_topics t WHERE t.post_id = p.post_id"
                f" AND t.topic IN ({_placeholders(filters.topics)}))"
            )
            params.extend(filters.topics)
        if filters.sentiment is not None:
            clauses.append("p.sentiment = ?")
            params.append(filters.sentiment.value)
        return clauses, params

    def _select_posts(
        self,
        conn: duckdb.DuckDBPyConnection,
        fields: list[str],
        filters: DashboardFilters,
        start: datetime,
        end: datetime,
        sort: SortMode,
        limit: int,
        after: Optional[KeysetCursor],
        offset: int,
    ) -> list[dict[str, Any]]:
        clauses, params = self._filter_clause(filters, start, end)
        if after is not None:
            clause, extra = _keyset_clause(after, sort)
            clauses.append(clause)
            params.extend(extra)

        columns = ", ".join(f"p.{field}" for field in fields)
        query = f"""
            SELECT {columns}, {EFFECTIVE_PUBLISHED} AS published_at
            FROM posts p
            WHERE {" AND ".join(clauses)}
            ORDER BY {ORDER_BY[sort]}
            LIMIT ?
        """
        params.append(max(0, limit))
        if after is None and offset > 0:
            query += " OFFSET ?"
            params.append(offset)

        names = fields + ["published_at"]
        return [dict(zip(names, row)) for row in conn.execute(query, params).fetchall()]

    def _tags_for(
        self, conn: duckdb.DuckDBPyConnection, table: str, column: str, post_ids: list[str]
    ) -> dict[str, list[str]]:
        if not post_ids:
            return {}
        rows = conn.execute(
            f"""
            SELECT post_id, {column} FROM {table}
            WHERE post_id IN ({_placeholders(post_ids)})
            ORDER BY post_id, {column}
            """,
            post_ids,
        ).fetchall()
        tags: dict[str, list[str]] = {}
        for post_id, value in rows:
            tags.setdefault(post_id, []).append(value)
        return tags

    def _comment_counts(
        self, conn: duckdb.DuckDBPyConnection, post_ids: list[str]
    ) -> dict[str, int]:
        if not post_ids:
            return {}
        rows = conn.execute(
            f"""
            SELECT post_id, count(*) FROM comments
            WHERE post_id IN ({_placeholders(post_ids)})
            GROUP BY post_id
            """,
            post_ids,
        ).fetchall()
        return {post_id: count for post_id, count in rows}

    def _to_post_records(
        self, conn: duckdb.DuckDBPyConnection, rows: list[dict[str, Any]]
    ) -> list[PostRecord]:
        post_ids = [row["post_id"] for row in rows]
        hashtags = (
            self._tags_for(conn, "post_hashtags", "hashtag", post_ids)
            if self._capabilities.hashtags
            else {}
        )
        topics = (
            self._tags_for(conn, "post_topics", "topic", post_ids)
            if self._capabilities.topics
            else {}
        )
        strategies = self._tags_for(conn, "post_strategies", "strategy_key", post_ids)
        counts = self._comment_counts(conn, post_ids)
        return [
            PostRecord(
                **row,
                strategy_keys=strategies.get(row["post_id"], []),
                hashtags=hashtags.get(row["post_id"], []),
                topics=topics.get(row["post_id"], []),
                comment_count=counts.get(row["post_id"], 0),
            )
            for row in rows
        ]

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
        """Read metric rows for a filtered window in keyset order."""
        try:
            with self._get_connection() as conn:
                rows = self._select_posts(
                    conn, METRIC_FIELDS, filters, start, end, sort, limit, after, offset
                )
                result = [MetricRow(**row) for row in rows]
                logger.debug("metric_rows_read", count=len(result), sort=sort.value)
                return result

        except Exception as e:
            logger.error("fetch_metric_rows_failed", error=str(e))
            raise StorageError(f"Failed to fetch metric rows: {e}") from e

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
        """Read full posts for a filtered window in keyset order."""
        try:
            with self._get_connection() as conn:
                rows = self._select_posts(
                    conn,
                    METRIC_FIELDS + POST_FIELDS,
                    filters,
                    start,
                    end,
                    sort,
                    limit,
                    after,
                    offset,
                )
                posts = self._to_post_records(conn, rows)
                logger.debug("posts_read", count=len(posts), sort=sort.value)
                return posts

        except Exception as e:
            logger.error("fetch_posts_failed", error=str(e))
            raise StorageError(f"Failed to fetch posts: {e}") from e

    def get_post(self, post_id: str) -> Optional[PostRecord]:
        """Read one post by id."""
        fields = METRIC_FIELDS + POST_FIELDS
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"""
                    SELECT {", ".join(f"p.{f}" for f in fields)},
                           {EFFECTIVE_PUBLISHED} AS published_at
                    FROM posts p
                    WHERE p.post_id = ?
                    """,
                    [post_id],
                ).fetchone()
                if row is None:
                    return None
                return self._to_post_records(conn, [dict(zip(fields + ["published_at"], row))])[0]

        except Exception as e:
            logger.error("get_post_failed", post_id=post_id, error=str(e))
            raise StorageError(f"Failed to read post: {e}") from e

    def _replace_tags(
        self,
        conn: duckdb.DuckDBPyConnection,
        table: str,
        post_id: str,
        values: list[str],
    ) -> None:
        conn.execute(f"DELETE FROM {table} WHERE post_id = ?", [post_id])
        if values:
            conn.executemany(
                f"INSERT INTO {table} VALUES (?, ?)", [[post_id, value] for value in values]
            )

    def upsert_post(self, post: PostInput) -> tuple[UpsertStatus, str]:
        """Insert or update a post keyed on (channel, external_post_id)."""
        now = to_naive_utc(utc_now())
        values = [
            post.account_name,
            post.content_id,
            post.post_url,
            post.post_type,
            post.title,
            post.text,
            to_naive_utc(post.published_at),
            post.exposure,
            post.engagement,
            post.impressions,
            post.reach,
            post.clicks,
            post.likes,
            post.comments,
            post.shares,
            post.views,
            post.source_score,
            Sentiment.normalize(post.sentiment).value,
            post.campaign_key,
        ]
        try:
            with self.transaction(), self._get_connection() as conn:
                existing = conn.execute(
                    "SELECT post_id FROM posts WHERE channel = ? AND external_post_id = ?",
                    [post.channel.value, post.external_post_id],
                ).fetchone()

                if existing is not None:
                    post_id = existing[0]
                    conn.execute(
                        """
                        UPDATE posts SET
                            account_name = ?, content_id = ?, post_url = ?, post_type = ?,
                            title = ?, text = ?, published_at = ?, exposure = ?,
                            engagement = ?, impressions = ?, reach = ?, clicks = ?,
                            likes = ?, comments = ?, shares = ?, views = ?,
                            source_score = ?, sentiment = ?, campaign_key = ?,
                            updated_at = ?
                        WHERE post_id = ?
                        """,
                        values + [now, post_id],
                    )
                    status = UpsertStatus.UPDATED
                else:
                    post_id = str(uuid4())
                    conn.execute(
                        """
                        INSERT INTO posts (
                            post_id, channel, external_post_id,
                            account_name, content_id, post_url, post_type,
                            title, text, published_at, exposure,
                            engagement, impressions, reach, clicks,
                            likes, comments, shares, views,
                            source_score, sentiment, campaign_key,
                            created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        [post_id, post.channel.value, post.external_post_id] + values + [now, now],
                    )
                    status = UpsertStatus.CREATED

                strategies = list(dict.fromkeys(k.strip() for k in post.strategy_keys if k.strip()))
                self._replace_tags(conn, "post_strategies", post_id, strategies)
                if self._capabilities.hashtags:
                    hashtags = extract_hashtags(f"{post.title} {post.text or ''}")
                    self._replace_tags(conn, "post_hashtags", post_id, hashtags)
                if self._capabilities.topics:
                    topics = list(dict.fromkeys(t.strip() for t in post.topics if t.strip()))
                    self._replace_tags(conn, "post_topics", post_id, topics)

            logger.debug("post_upserted", post_id=post_id, status=status.value)
            return status, post_id

        except Exception as e:
            logger.error(
                "upsert_post_failed",
                channel=post.channel.value,
                external_post_id=post.external_post_id,
                error=str(e),
            )
            raise StorageError(f"Failed to upsert post: {e}") from e

    def channel_row_stats(self) -> dict[Channel, ChannelRowStats]:
        """Stored post count and published range per channel."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    f"""
                    SELECT p.channel, count(*), min({EFFECTIVE_PUBLISHED}), max({EFFECTIVE_PUBLISHED})
                    FROM posts p
                    GROUP BY p.channel
                    """
                ).fetchall()
                return {
                    Channel(row[0]): ChannelRowStats(
                        channel=row[0], rows=row[1], min_date=row[2], max_date=row[3]
                    )
                    for row in rows
                }

        except Exception as e:
            logger.error("channel_row_stats_failed", error=str(e))
            raise StorageError(f"Failed to read channel row stats: {e}") from e

    def coverage(self) -> Coverage:
        """Store-side span from posts, source-side span from the latest snapshots."""
        try:
            with self._get_connection() as conn:
                store = conn.execute(
                    f"SELECT min({EFFECTIVE_PUBLISHED}), max({EFFECTIVE_PUBLISHED}) FROM posts p"
                ).fetchone()
        except Exception as e:
            logger.error("coverage_failed", error=str(e))
            raise StorageError(f"Failed to read coverage: {e}") from e

        snapshots = self.latest_reconciliation_by_channel()
        source_min = [s.source_min_date for s in snapshots if s.source_min_date]
        source_max = [s.source_max_date for s in snapshots if s.source_max_date]
        return Coverage(
            store_min_date=store[0] if store else None,
            store_max_date=store[1] if store else None,
            source_min_date=min(source_min) if source_min else None,
            source_max_date=max(source_max) if source_max else None,
        )

    # =========================================================================
    # Comments
    # =========================================================================

    def list_comments(
        self,
        post_id: str,
        filters: CommentFilters,
        limit: int,
        offset: int = 0,
    ) -> list[CommentRecord]:
        """List a post's comments newest first."""
        try:
            with self._get_connection() as conn:
                query = f"""
                    SELECT {_columns(COMMENT_FIELDS)}
                    FROM comments
                    WHERE post_id = ?
                """
                params: list[Any] = [post_id]

                if filters.sentiment is not None:
                    query += " AND sentiment = ?"
                    params.append(filters.sentiment.value)

                if filters.is_spam is not None:
                    query += " AND is_spam = ?"
                    params.append(filters.is_spam)

                if filters.related_to_post_text is not None:
                    query += " AND related_to_post_text = ?"
                    params.append(filters.related_to_post_text)

                query += """
                    ORDER BY COALESCE(published_at, created_at) DESC, comment_id DESC
                    LIMIT ? OFFSET ?
                """
                params.extend([max(0, limit), max(0, offset)])

                result = conn.execute(query, params).fetchall()
                comments = [CommentRecord(**dict(zip(COMMENT_FIELDS, row))) for row in result]
                logger.debug("comments_read", post_id=post_id, count=len(comments))
                return comments

        except Exception as e:
            logger.error("list_comments_failed", post_id=post_id, error=str(e))
            raise StorageError(f"Failed to list comments: {e}") from e

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        """Read one comment by id."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT {_columns(COMMENT_FIELDS)} FROM comments WHERE comment_id = ?",
                    [comment_id],
                ).fetchone()
                if row is None:
                    return None
                return CommentRecord(**dict(zip(COMMENT_FIELDS, row)))

        except Exception as e:
            logger.error("get_comment_failed", comment_id=comment_id, error=str(e))
            raise StorageError(f"Failed to read comment: {e}") from e

    def update_comment(self, comment: CommentRecord) -> None:
        """Write the moderation fields of a comment."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    UPDATE comments SET
                        sentiment = ?, sentiment_source = ?, is_spam = ?,
                        related_to_post_text = ?, updated_at = ?
                    WHERE comment_id = ?
                    """,
                    [
                        comment.sentiment.value,
                        comment.sentiment_source.value,
                        comment.is_spam,
                        comment.related_to_post_text,
                        to_naive_utc(comment.updated_at),
                        comment.comment_id,
                    ],
                )
                logger.debug("comment_updated", comment_id=comment.comment_id)

        except Exception as e:
            logger.error("update_comment_failed", comment_id=comment.comment_id, error=str(e))
            raise StorageError(f"Failed to update comment: {e}") from e

    def upsert_comment(self, comment: CommentInput) -> tuple[UpsertStatus, str]:
        """Insert or update a comment keyed on its external mention id."""
        now = to_naive_utc(utc_now())
        sentiment = Sentiment.normalize(comment.sentiment).value
        try:
            with self.transaction(), self._get_connection() as conn:
                existing = conn.execute(
                    "SELECT comment_id FROM comments WHERE external_comment_id = ?",
                    [comment.external_comment_id],
                ).fetchone()

                if existing is not None:
                    comment_id = existing[0]
                    conn.execute(
                        """
                        UPDATE comments SET
                            author_name = ?, text = ?, published_at = ?,
                            sentiment = CASE WHEN sentiment_source = ? THEN sentiment ELSE ? END,
                            updated_at = ?
                        WHERE comment_id = ?
                        """,
                        [
                            comment.author_name,
                            comment.text,
                            to_naive_utc(comment.published_at),
                            SentimentSource.MANUAL.value,
                            sentiment,
                            now,
                            comment_id,
                        ],
                    )
                    status = UpsertStatus.UPDATED
                else:
                    comment_id = str(uuid4())
                    conn.execute(
                        f"""
                        INSERT INTO comments ({_columns(COMMENT_FIELDS)})
                        VALUES ({_placeholders(COMMENT_FIELDS)})
                        """,
                        [
                            comment_id,
                            comment.post_id,
                            comment.external_comment_id,
                            comment.author_name,
                            comment.text,
                            sentiment,
                            SentimentSource.PROVIDER.value,
                            False,
                            True,
                            to_naive_utc(comment.published_at),
                            now,
                            now,
                        ],
                    )
                    status = UpsertStatus.CREATED

            logger.debug("comment_upserted", comment_id=comment_id, status=status.value)
            return status, comment_id

        except Exception as e:
            logger.error(
                "upsert_comment_failed",
                external_comment_id=comment.external_comment_id,
                error=str(e),
            )
            raise StorageError(f"Failed to upsert comment: {e}") from e

    def insert_comment_override(self, override: CommentOverride) -> str:
        """Append a manual moderation record."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO comment_overrides (
                        override_id, comment_id, actor_user_id, is_spam,
                        related_to_post_text, sentiment, reason, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        override.override_id,
                        override.comment_id,
                        override.actor_user_id,
                        override.is_spam,
                        override.related_to_post_text,
                        override.sentiment.value if override.sentiment else None,
                        override.reason,
                        to_naive_utc(override.created_at),
                    ],
                )
                logger.info(
                    "comment_override_written",
                    override_id=override.override_id,
                    comment_id=override.comment_id,
                )
                return override.override_id

        except Exception as e:
            logger.error("insert_comment_override_failed", error=str(e))
            raise StorageError(f"Failed to write comment override: {e}") from e

    # =========================================================================
    # Sync runs
    # =========================================================================

    @staticmethod
    def _sync_run_values(run: SyncRun) -> list[Any]:
        return [
            run.run_id,
            run.trigger_type.value,
            run.status.value,
            run.request_id,
            to_naive_utc(run.queued_at),
            to_naive_utc(run.started_at),
            to_naive_utc(run.finished_at),
            run.current_phase.value if run.current_phase else None,
            json.dumps(run.phases.model_dump(mode="json")),
            json.dumps(run.counters.model_dump()),
            run.error_message,
            to_naive_utc(run.created_at),
        ]

    @staticmethod
    def _row_to_sync_run(row: tuple) -> SyncRun:
        values = dict(zip(SYNC_RUN_FIELDS, row))
        values["phases"] = PhaseBoard.model_validate(_loads(values["phases"], {}))
        values["counters"] = RunCounters.model_validate(_loads(values["counters"], {}))
        return SyncRun(**values)

    def insert_sync_run(self, run: SyncRun) -> str:
        """Write a new sync run."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    INSERT INTO sync_runs ({_columns(SYNC_RUN_FIELDS)})
                    VALUES ({_placeholders(SYNC_RUN_FIELDS)})
                    """,
                    self._sync_run_values(run),
                )
                logger.debug("sync_run_written", run_id=run.run_id)
                return run.run_id

        except Exception as e:
            logger.error("insert_sync_run_failed", run_id=run.run_id, error=str(e))
            raise StorageError(f"Failed to write sync run: {e}") from e

    def update_sync_run(self, run: SyncRun) -> None:
        """Overwrite the state of a sync run."""
        values = self._sync_run_values(run)
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    UPDATE sync_runs SET
                        status = ?, started_at = ?, finished_at = ?, current_phase = ?,
                        phases = ?, counters = ?, error_message = ?
                    WHERE run_id = ?
                    """,
                    [values[2]] + values[5:11] + [run.run_id],
                )
                logger.debug("sync_run_updated", run_id=run.run_id, status=run.status.value)

        except Exception as e:
            logger.error("update_sync_run_failed", run_id=run.run_id, error=str(e))
            raise StorageError(f"Failed to update sync run: {e}") from e

    def get_sync_run(self, run_id: str) -> Optional[SyncRun]:
        """Read one sync run."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT {_columns(SYNC_RUN_FIELDS)} FROM sync_runs WHERE run_id = ?",
                    [run_id],
                ).fetchone()
                return self._row_to_sync_run(row) if row else None

        except Exception as e:
            logger.error("get_sync_run_failed", run_id=run_id, error=str(e))
            raise StorageError(f"Failed to read sync run: {e}") from e

    def list_sync_runs(self, limit: int, offset: int = 0) -> list[SyncRun]:
        """List sync runs newest first."""
        try:
            with self._get_connection() as conn:
                result = conn.execute(
                    f"""
                    SELECT {_columns(SYNC_RUN_FIELDS)}
                    FROM sync_runs
                    ORDER BY queued_at DESC, created_at DESC, run_id DESC
                    LIMIT ? OFFSET ?
                    """,
                    [max(0, limit), max(0, offset)],
                ).fetchall()
                runs = [self._row_to_sync_run(row) for row in result]
                logger.debug("sync_runs_read", count=len(runs))
                return runs

        except Exception as e:
            logger.error("list_sync_runs_failed", error=str(e))
            raise StorageError(f"Failed to list sync runs: {e}") from e

    def latest_sync_run(self) -> Optional[SyncRun]:
        runs = self.list_sync_runs(limit=1)
        return runs[0] if runs else None

    # =========================================================================
    # Incidents
    # =========================================================================

    @staticmethod
    def _incident_values(incident: Incident) -> list[Any]:
        return [
            incident.incident_id,
            incident.signal_version,
            incident.severity.value,
            incident.status.value,
            incident.risk_score,
            incident.classified_items,
            to_naive_utc(incident.sla_due_at),
            to_naive_utc(incident.cooldown_until),
            json.dumps(incident.payload, default=str),
            to_naive_utc(incident.created_at),
            to_naive_utc(incident.updated_at),
        ]

    @staticmethod
    def _row_to_incident(row: tuple) -> Incident:
        values = dict(zip(INCIDENT_FIELDS, row))
        values["payload"] = _loads(values["payload"], {})
        return Incident(**values)

    def find_active_incident(self, signal_version: str) -> Optional[Incident]:
        """Most recently updated active incident for a signal version."""
        incidents = self.list_active_incidents(signal_version, limit=1)
        return incidents[0] if incidents else None

    def insert_incident(self, incident: Incident) -> str:
        """Write a new incident."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    INSERT INTO incidents ({_columns(INCIDENT_FIELDS)})
                    VALUES ({_placeholders(INCIDENT_FIELDS)})
                    """,
                    self._incident_values(incident),
                )
                logger.info("incident_written", incident_id=incident.incident_id)
                return incident.incident_id

        except Exception as e:
            logger.error(
                "insert_incident_failed", incident_id=incident.incident_id, error=str(e)
            )
            raise StorageError(f"Failed to write incident: {e}") from e

    def update_incident(self, incident: Incident) -> None:
        """Overwrite the state of an incident."""
        values = self._incident_values(incident)
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    UPDATE incidents SET
                        severity = ?, status = ?, risk_score = ?, classified_items = ?,
                        sla_due_at = ?, cooldown_until = ?, payload = ?, updated_at = ?
                    WHERE incident_id = ?
                    """,
                    values[2:9] + [values[10], incident.incident_id],
                )
                logger.debug("incident_updated", incident_id=incident.incident_id)

        except Exception as e:
            logger.error(
                "update_incident_failed", incident_id=incident.incident_id, error=str(e)
            )
            raise StorageError(f"Failed to update incident: {e}") from e

    def list_active_incidents(self, signal_version: str, limit: int = 30) -> list[Incident]:
        """Active incidents for a signal version, most recently updated first."""
        active = [status.value for status in IncidentStatus.active()]
        try:
            with self._get_connection() as conn:
                result = conn.execute(
                    f"""
                    SELECT {_columns(INCIDENT_FIELDS)}
                    FROM incidents
                    WHERE signal_version = ? AND status IN ({_placeholders(active)})
                    ORDER BY updated_at DESC, incident_id DESC
                    LIMIT ?
                    """,
                    [signal_version] + active + [max(0, limit)],
                ).fetchall()
                return [self._row_to_incident(row) for row in result]

        except Exception as e:
            logger.error("list_active_incidents_failed", error=str(e))
            raise StorageError(f"Failed to list incidents: {e}") from e

    # =========================================================================
    # Dashboard settings and KPI targets
    # =========================================================================

    @staticmethod
    def _setting_values(setting: DashboardSetting) -> list[Any]:
        return [
            setting.focus_account,
            setting.target_quarterly_sov_pp,
            setting.target_shs,
            setting.risk_threshold,
            setting.sentiment_drop_threshold,
            setting.er_drop_threshold,
            setting.alert_cooldown_minutes,
            json.dumps(setting.metadata, default=str),
            setting.updated_by_user_id,
            to_naive_utc(setting.created_at),
            to_naive_utc(setting.updated_at),
        ]

    def read_dashboard_setting(self) -> Optional[DashboardSetting]:
        """Read the settings singleton."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT {_columns(SETTING_FIELDS)} FROM dashboard_settings WHERE setting_id = ?",
                    [SETTING_ID],
                ).fetchone()
                if row is None:
                    return None
                values = dict(zip(SETTING_FIELDS, row))
                values["metadata"] = _loads(values["metadata"], {})
                return DashboardSetting(**values)

        except Exception as e:
            logger.error("read_dashboard_setting_failed", error=str(e))
            raise StorageError(f"Failed to read dashboard settings: {e}") from e

    def insert_dashboard_setting(self, setting: DashboardSetting) -> None:
        """Create the settings singleton."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    INSERT INTO dashboard_settings (setting_id, {_columns(SETTING_FIELDS)})
                    VALUES (?, {_placeholders(SETTING_FIELDS)})
                    """,
                    [SETTING_ID] + self._setting_values(setting),
                )
                logger.info("dashboard_setting_written")

        except Exception as e:
            logger.error("insert_dashboard_setting_failed", error=str(e))
            raise StorageError(f"Failed to write dashboard settings: {e}") from e

    def update_dashboard_setting(self, setting: DashboardSetting) -> None:
        """Overwrite the settings singleton (created_at is kept)."""
        editable = [f for f in SETTING_FIELDS if f != "created_at"]
        values = dict(zip(SETTING_FIELDS, self._setting_values(setting)))
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    UPDATE dashboard_settings SET {", ".join(f"{f} = ?" for f in editable)}
                    WHERE setting_id = ?
                    """,
                    [values[f] for f in editable] + [SETTING_ID],
                )
                logger.debug("dashboard_setting_updated")

        except Exception as e:
            logger.error("update_dashboard_setting_failed", error=str(e))
            raise StorageError(f"Failed to update dashboard settings: {e}") from e

    def read_kpi_targets(self, year: int, channels: list[Channel]) -> dict[Channel, KpiTarget]:
        """Stored ER targets for a year."""
        if not channels:
            return {}
        names = [channel.value for channel in channels]
        try:
            with self._get_connection() as conn:
                result = conn.execute(
                    f"""
                    SELECT {_columns(KPI_TARGET_FIELDS)}
                    FROM kpi_targets
                    WHERE year = ? AND channel IN ({_placeholders(names)})
                    """,
                    [year] + names,
                ).fetchall()
                targets = [KpiTarget(**dict(zip(KPI_TARGET_FIELDS, row))) for row in result]
                return {target.channel: target for target in targets}

        except Exception as e:
            logger.error("read_kpi_targets_failed", year=year, error=str(e))
            raise StorageError(f"Failed to read KPI targets: {e}") from e

    def upsert_kpi_target(self, target: KpiTarget) -> None:
        """Insert or replace the target for (year, channel)."""
        updates = ", ".join(f"{f} = EXCLUDED.{f}" for f in KPI_TARGET_FIELDS[2:])
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    INSERT INTO kpi_targets ({_columns(KPI_TARGET_FIELDS)})
                    VALUES ({_placeholders(KPI_TARGET_FIELDS)})
                    ON CONFLICT (year, channel) DO UPDATE SET {updates}
                    """,
                    [
                        target.year,
                        target.channel.value,
                        target.baseline_er,
                        target.momentum,
                        target.auto_growth_pct,
                        target.target_er,
                        target.source.value,
                        target.override_reason,
                        target.updated_by_user_id,
                        to_naive_utc(target.updated_at),
                    ],
                )
                logger.debug("kpi_target_written", year=target.year, channel=target.channel.value)

        except Exception as e:
            logger.error("upsert_kpi_target_failed", error=str(e))
            raise StorageError(f"Failed to write KPI target: {e}") from e

    # =========================================================================
    # Reconciliation
    # =========================================================================

    @staticmethod
    def _row_to_snapshot(row: tuple) -> ReconciliationSnapshot:
        values = dict(zip(SNAPSHOT_FIELDS, row))
        values["details"] = _loads(values["details"], {})
        return ReconciliationSnapshot(**values)

    def replace_reconciliation_snapshots(
        self, run_id: str, snapshots: list[ReconciliationSnapshot]
    ) -> int:
        """Replace every snapshot of a run."""
        try:
            with self.transaction(), self._get_connection() as conn:
                conn.execute("DELETE FROM reconciliation_snapshots WHERE run_id = ?", [run_id])
                if snapshots:
                    conn.executemany(
                        f"""
                        INSERT INTO reconciliation_snapshots ({_columns(SNAPSHOT_FIELDS)})
                        VALUES ({_placeholders(SNAPSHOT_FIELDS)})
                        """,
                        [
                            [
                                s.snapshot_id,
                                run_id,
                                s.channel.value,
                                s.source_rows,
                                s.store_rows,
                                s.delta_rows,
                                to_naive_utc(s.source_min_date),
                                to_naive_utc(s.source_max_date),
                                to_naive_utc(s.store_min_date),
                                to_naive_utc(s.store_max_date),
                                s.status.value,
                                json.dumps(s.details, default=str),
                                to_naive_utc(s.created_at),
                            ]
                            for s in snapshots
                        ],
                    )
            logger.info("reconciliation_snapshots_written", run_id=run_id, count=len(snapshots))
            return len(snapshots)

        except Exception as e:
            logger.error("replace_reconciliation_snapshots_failed", run_id=run_id, error=str(e))
            raise StorageError(f"Failed to write reconciliation snapshots: {e}") from e

    def latest_reconciliation_by_channel(self) -> list[ReconciliationSnapshot]:
        """Latest snapshot per channel."""
        try:
            with self._get_connection() as conn:
                result = conn.execute(
                    f"""
                    SELECT {_columns(SNAPSHOT_FIELDS)}
                    FROM reconciliation_snapshots
                    QUALIFY row_number() OVER (
                        PARTITION BY channel ORDER BY created_at DESC, snapshot_id DESC
                    ) = 1
                    ORDER BY channel
                    """
                ).fetchall()
                return [self._row_to_snapshot(row) for row in result]

        except Exception as e:
            logger.error("latest_reconciliation_failed", error=str(e))
            raise StorageError(f"Failed to read reconciliation snapshots: {e}") from e

    # =========================================================================
    # Audit
    # =========================================================================

    def append_audit(self, entry: AuditEntry) -> str:
        """Append an audit entry."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    INSERT INTO audit_log ({_columns(AUDIT_FIELDS)})
                    VALUES ({_placeholders(AUDIT_FIELDS)})
                    """,
                    [
                        entry.audit_id,
                        entry.actor_user_id,
                        entry.action,
                        entry.resource_type,
                        entry.resource_id,
                        entry.request_id,
                        json.dumps(entry.before, default=str) if entry.before is not None else None,
                        json.dumps(entry.after, default=str) if entry.after is not None else None,
                        to_naive_utc(entry.created_at),
                    ],
                )
                logger.info("audit_written", action=entry.action, audit_id=entry.audit_id)
                return entry.audit_id

        except Exception as e:
            logger.error("append_audit_failed", action=entry.action, error=str(e))
            raise StorageError(f"Failed to write audit entry: {e}") from e

    def read_audit_entries(
        self, action: Optional[str] = None, limit: int = 100
    ) -> list[AuditEntry]:
        """Audit entries, newest first."""
        try:
            with self._get_connection() as conn:
                query = f"SELECT {_columns(AUDIT_FIELDS)} FROM audit_log WHERE 1=1"
                params: list[Any] = []

                if action:
                    query += " AND action = ?"
                    params.append(action)

                query += " ORDER BY created_at DESC, audit_id DESC LIMIT ?"
                params.append(max(0, limit))

                entries = []
                for row in conn.execute(query, params).fetchall():
                    values = dict(zip(AUDIT_FIELDS, row))
                    values["before"] = _loads(values["before"], None)
                    values["after"] = _loads(values["after"], None)
                    entries.append(AuditEntry(**values))
                return entries

        except Exception as e:
            logger.error("read_audit_entries_failed", error=str(e))
            raise StorageError(f"Failed to read audit entries: {e}") from e
