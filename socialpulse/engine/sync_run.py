"""
Sync Run State Machine.

Tracks one ETL execution through ``queued -> running -> completed | failed``.
Each of the five fixed phases (ingest, classify, aggregate, reconcile,
alerts) carries its own ``pending -> running -> completed | failed | skipped``
state. Phase transitions are permissive: any phase may be (re)entered in any
order while the run is running. Run-level transitions are strict: terminal
runs reject further mutation.

Transitions are pure (``SyncRunStateMachine``); ``SyncRunTracker`` loads,
transitions and persists runs inside a storage transaction.

Version: sync_run_v1
"""

from typing import Any, Optional, Union

import structlog

from socialpulse.config import get_settings
from socialpulse.errors import ConflictError, NotFoundError
from socialpulse.models.enums import PhaseState, RunStatus, SyncPhase, TriggerType
from socialpulse.models.pagination import OffsetCursor, Page
from socialpulse.models.sync import PhaseBoard, PhaseSnapshot, RunCounters, SyncRun
from socialpulse.storage.base import StorageBackend
from socialpulse.utils.clock import Clock, utc_now
from socialpulse.utils.logging import log_event

from .pagination import build_page, clamp_page_size, decode_offset

logger = structlog.get_logger()

CounterUpdate = Union[RunCounters, dict[str, Any], None]


class SyncRunStateMachine:
    """
    Pure run transitions. Every method returns a new SyncRun.

    Attributes:
        clock: Source of transition timestamps
        max_error_length: Stored error messages are truncated to this length
    """

    def __init__(self, clock: Clock = utc_now, max_error_length: Optional[int] = None):
        self.clock = clock
        self.max_error_length = max_error_length or get_settings().error_message_max_length

    def queue(self, trigger_type: TriggerType, request_id: Optional[str] = None) -> SyncRun:
        now = self.clock()
        return SyncRun(
            trigger_type=trigger_type,
            status=RunStatus.QUEUED,
            request_id=request_id,
            queued_at=now,
            created_at=now,
        )

    def start(self, run: SyncRun) -> SyncRun:
        """
        Move a queued run to running with every phase reset to pending.

        Raises:
            ConflictError: the run is not queued
        """
        if run.status != RunStatus.QUEUED:
            raise ConflictError(
                "Only queued runs can be started",
                details={"run_id": run.run_id, "status": run.status.value},
            )
        started = run.model_copy(deep=True)
        started.status = RunStatus.RUNNING
        started.started_at = run.started_at or self.clock()
        started.finished_at = None
        started.error_message = None
        started.current_phase = None
        started.phases = PhaseBoard()
        return started

    def update_phase(
        self,
        run: SyncRun,
        phase: SyncPhase,
        state: PhaseState,
        details: Optional[dict[str, Any]] = None,
        counters: CounterUpdate = None,
    ) -> SyncRun:
        """
        Set one phase's state.

        ``running`` stamps ``started_at`` once and clears ``finished_at``;
        terminal states stamp ``finished_at`` (and ``started_at`` if never set).
        ``details`` replaces the phase details when given; ``counters`` are
        merged into the run counters, leaving unspecified counters untouched.

        Raises:
            ConflictError: the run is not running
        """
        self._require_running(run)
        now = self.clock()
        updated = run.model_copy(deep=True)
        snapshot = updated.phases.get(phase)

        if state == PhaseState.RUNNING:
            snapshot.started_at = snapshot.started_at or now
            snapshot.finished_at = None
        elif state.is_terminal:
            snapshot.started_at = snapshot.started_at or now
            snapshot.finished_at = now
        snapshot.state = state
        if details is not None:
            snapshot.details = dict(details)

        updated.phases.set(phase, snapshot)
        updated.current_phase = phase
        updated.counters = updated.counters.merge(counters)
        return updated

    def complete(self, run: SyncRun, counters: CounterUpdate = None) -> SyncRun:
        """
        Force-complete every non-terminal phase and mark the run completed.

        Raises:
            ConflictError: the run already finished
        """
        self._require_unfinished(run)
        now = self.clock()
        completed = run.model_copy(deep=True)
        for phase, snapshot in completed.phases.items():
            if snapshot.state.is_terminal:
                continue
            completed.phases.set(
                phase,
                PhaseSnapshot(
                    state=PhaseState.COMPLETED,
                    started_at=snapshot.started_at or now,
                    finished_at=now,
                    details=snapshot.details,
                ),
            )
        completed.status = RunStatus.COMPLETED
        completed.started_at = completed.started_at or now
        completed.finished_at = now
        completed.current_phase = None
        completed.counters = completed.counters.merge(counters)
        return completed

    def fail(self, run: SyncRun, error_message: str, counters: CounterUpdate = None) -> SyncRun:
        """
        Mark the current phase and the run failed, keeping accumulated counters.

        Raises:
            ConflictError: the run already finished
        """
        self._require_unfinished(run)
        now = self.clock()
        failed = run.model_copy(deep=True)
        if failed.current_phase is not None:
            snapshot = failed.phases.get(failed.current_phase)
            snapshot.state = PhaseState.FAILED
            snapshot.started_at = snapshot.started_at or now
            snapshot.finished_at = now
            failed.phases.set(failed.current_phase, snapshot)
        failed.status = RunStatus.FAILED
        failed.finished_at = now
        failed.error_message = (error_message or "")[: self.max_error_length]
        failed.counters = failed.counters.merge(counters)
        return failed

    @staticmethod
    def _require_running(run: SyncRun) -> None:
        if run.status != RunStatus.RUNNING:
            raise ConflictError(
                "Run is not running",
                details={"run_id": run.run_id, "status": run.status.value},
            )

    @staticmethod
    def _require_unfinished(run: SyncRun) -> None:
        if run.status.is_terminal:
            raise ConflictError(
                "Run already finished",
                details={"run_id": run.run_id, "status": run.status.value},
            )


class SyncRunTracker:
    """
    Persists sync run transitions.

    Each operation reads the run, applies a pure transition and writes it
    back within one storage transaction.

    Example:
        >>> tracker = SyncRunTracker(storage)
        >>> run = tracker.start_run(trigger_type=TriggerType.MANUAL)
        >>> tracker.update_phase(run.run_id, SyncPhase.INGEST, PhaseState.RUNNING)
        >>> tracker.complete_run(run.run_id, counters={"rows_persisted": 1200})
    """

    def __init__(self, storage: StorageBackend, machine: Optional[SyncRunStateMachine] = None):
        self.storage = storage
        self.machine = machine or SyncRunStateMachine()
        self.logger = structlog.get_logger()

    def queue_run(
        self, trigger_type: TriggerType = TriggerType.MANUAL, request_id: Optional[str] = None
    ) -> SyncRun:
        run = self.machine.queue(trigger_type, request_id)
        with self.storage.transaction():
            self.storage.insert_sync_run(run)
        self.logger.info("sync_run_queued", run_id=run.run_id, trigger_type=trigger_type.value)
        return run

    def start_run(
        self,
        run_id: Optional[str] = None,
        trigger_type: TriggerType = TriggerType.SCHEDULED,
        request_id: Optional[str] = None,
    ) -> SyncRun:
        """
        Start a queued run, or create and start a new one when ``run_id`` is omitted.

        Raises:
            NotFoundError: ``run_id`` does not exist
            ConflictError: the run is not queued
        """
        with self.storage.transaction():
            if run_id is None:
                run = self.machine.start(self.machine.queue(trigger_type, request_id))
                self.storage.insert_sync_run(run)
            else:
                run = self.machine.start(self._load(run_id))
                self.storage.update_sync_run(run)
        self.logger.info("sync_run_started", run_id=run.run_id, trigger_type=run.trigger_type.value)
        return run

    def update_phase(
        self,
        run_id: str,
        phase: SyncPhase,
        state: PhaseState,
        details: Optional[dict[str, Any]] = None,
        counters: CounterUpdate = None,
    ) -> SyncRun:
        with self.storage.transaction():
            run = self.machine.update_phase(self._load(run_id), phase, state, details, counters)
            self.storage.update_sync_run(run)
        log_event(
            self.logger,
            "warning" if state == PhaseState.FAILED else "info",
            "sync_phase_updated",
            run_id=run_id,
            phase=phase.value,
            state=state.value,
        )
        return run

    def complete_run(self, run_id: str, counters: CounterUpdate = None) -> SyncRun:
        with self.storage.transaction():
            run = self.machine.complete(self._load(run_id), counters)
            self.storage.update_sync_run(run)
        self.logger.info("sync_run_completed", run_id=run_id, **run.counters.model_dump())
        return run

    def fail_run(self, run_id: str, error_message: str, counters: CounterUpdate = None) -> SyncRun:
        with self.storage.transaction():
            run = self.machine.fail(self._load(run_id), error_message, counters)
            self.storage.update_sync_run(run)
        self.logger.error(
            "sync_run_failed",
            run_id=run_id,
            phase=run.current_phase.value if run.current_phase else None,
            error=run.error_message,
        )
        return run

    def get_run(self, run_id: str) -> SyncRun:
        return self._load(run_id)

    def list_runs(self, limit: Optional[int] = None, cursor: Optional[str] = None) -> Page:
        """Runs ordered by (queued_at DESC, created_at DESC, run_id DESC)."""
        page_size = clamp_page_size(limit)
        offset = decode_offset(cursor)
        fetched = self.storage.list_sync_runs(limit=page_size + 1, offset=offset)
        return build_page(fetched, page_size, lambda _run: OffsetCursor(offset=offset + page_size))

    def _load(self, run_id: str) -> SyncRun:
        run = self.storage.get_sync_run(run_id)
        if run is None:
            raise NotFoundError("Sync run not found", details={"run_id": run_id})
        return run
