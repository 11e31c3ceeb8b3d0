"""
AutomationScheduler -- Single periodic driver for both queues.

Contract:
    ``tick()`` runs, in order: release stuck jobs (both queues) -> scan
    candidates (each registered queue) -> one identity batch -> one encrypt
    batch -> backlog snapshot (at most every 15 minutes) -> retention purge
    (at most every 6 hours).  ``start()`` / ``stop()`` run ticks on a
    background thread.

Architecture: hr_automation/services.  All scheduling state (running flag,
    last backlog and retention times) lives on the instance, so several
    independent schedulers can coexist in one process.

Invariants enforced:
    - Run-to-completion: a tick that finds another tick in progress is
      skipped, not queued.
    - Step isolation: a step that raises is logged and the tick moves on;
      nothing escapes ``tick()``.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy.orm import Session

from hr_kernel.db.engine import session_scope
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.logging_config import get_logger

from hr_automation.domain.policy import age_minutes, is_due
from hr_automation.domain.types import (
    BacklogSnapshot,
    BatchRunResult,
    QueueKind,
    RetentionResult,
    TickResult,
)
from hr_automation.selectors.queue_selector import QueueSelector
from hr_automation.services.reclaimer import StuckJobReclaimer
from hr_automation.services.retention import RetentionService
from hr_automation.services.scanner import CandidateScanner
from hr_automation.services.worker import QueueWorker
from hr_automation.tasks.base import QueueTaskRegistry

logger = get_logger("automation.scheduler")

DEFAULT_BATCH_SIZES: dict[QueueKind, int] = {
    QueueKind.IDENTITY: 25,
    QueueKind.ENCRYPT: 50,
}


class AutomationScheduler:
    """In-process periodic scheduler for the automation queues.

    Non-goals:
        - NOT a distributed scheduler.  Several instances may run against
          the same database; the atomic claim keeps them from processing
          the same job twice.
        - Does NOT interrupt a job in flight on ``stop()``; the current tick
          runs to completion.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        task_registry: QueueTaskRegistry,
        scanner: CandidateScanner,
        reclaimer: StuckJobReclaimer,
        worker: QueueWorker,
        retention: RetentionService,
        clock: Clock | None = None,
        batch_sizes: dict[QueueKind, int] | None = None,
        tick_interval_seconds: float = 5.0,
        backlog_interval: timedelta = timedelta(minutes=15),
        retention_interval: timedelta = timedelta(hours=6),
    ):
        self._session_factory = session_factory
        self._registry = task_registry
        self._scanner = scanner
        self._reclaimer = reclaimer
        self._worker = worker
        self._retention = retention
        self._clock = clock or SystemClock()
        self._batch_sizes = {**DEFAULT_BATCH_SIZES, **(batch_sizes or {})}
        self._tick_interval = tick_interval_seconds
        self._backlog_interval = backlog_interval
        self._retention_interval = retention_interval

        self._tick_lock = threading.Lock()
        self._last_backlog_log_at: datetime | None = None
        self._last_retention_run_at: datetime | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> TickResult:
        """Run one full tick, or skip it if another tick is in progress."""
        if not self._tick_lock.acquire(blocking=False):
            logger.info("scheduler_tick_skipped")
            return TickResult(skipped=True)
        try:
            return self._run_tick()
        finally:
            self._tick_lock.release()

    def rescan_now(self) -> dict[str, int]:
        """On-demand candidate scan outside the tick cadence."""
        return self._scanner.scan_all()

    def release_stuck_now(self) -> dict[str, int]:
        """On-demand stuck-job release outside the tick cadence."""
        return self._reclaimer.release_all()

    def backlog_snapshot(self) -> tuple[BacklogSnapshot, ...]:
        """Per-status counts and oldest pending age of both queues, logged."""
        now = self._clock.now()
        snapshots = []
        with session_scope(self._session_factory) as session:
            selector = QueueSelector(session)
            for kind in QueueKind:
                snapshots.append(
                    BacklogSnapshot(
                        queue=kind,
                        status_counts=selector.status_counts(kind),
                        oldest_pending_age_minutes=age_minutes(
                            selector.oldest_pending_created_at(kind), now,
                        ),
                    )
                )
        for snapshot in snapshots:
            logger.info(
                "queue_backlog_snapshot",
                extra={
                    "queue": snapshot.queue.value,
                    "status_counts": snapshot.status_counts,
                    "oldest_pending_age_minutes": snapshot.oldest_pending_age_minutes,
                },
            )
        return tuple(snapshots)

    def start(self) -> None:
        """Start ticking on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="automation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_interval_seconds(self) -> float:
        return self._tick_interval

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _run_tick(self) -> TickResult:
        failed: list[str] = []

        released: dict[str, int] = {}
        for kind in QueueKind:
            count = self._step(f"release_stuck:{kind.value}", failed, self._reclaimer.release, kind)
            if count is not None:
                released[kind.value] = count

        enqueued: dict[str, int] = {}
        for kind in self._registry.kinds():
            count = self._step(f"scan:{kind.value}", failed, self._scanner.scan, kind)
            if count is not None:
                enqueued[kind.value] = count

        batches: list[BatchRunResult] = []
        for kind in self._registry.kinds():
            result = self._step(
                f"process:{kind.value}", failed,
                self._worker.run_batch, kind, self._batch_sizes[kind],
            )
            if result is not None:
                batches.append(result)

        now = self._clock.now()
        backlog: tuple[BacklogSnapshot, ...] = ()
        if is_due(self._last_backlog_log_at, self._backlog_interval, now):
            self._last_backlog_log_at = now
            backlog = self._step("backlog_snapshot", failed, self.backlog_snapshot) or ()

        retention: list[RetentionResult] = []
        if is_due(self._last_retention_run_at, self._retention_interval, now):
            self._last_retention_run_at = now
            for kind in QueueKind:
                result = self._step(f"retention:{kind.value}", failed, self._retention.purge, kind)
                if result is not None:
                    retention.append(result)

        return TickResult(
            released=released,
            enqueued=enqueued,
            batches=tuple(batches),
            backlog=backlog,
            retention=tuple(retention),
            failed_steps=tuple(failed),
        )

    @staticmethod
    def _step(name: str, failed: list[str], fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception:
            logger.exception("scheduler_step_failed", extra={"step": name})
            failed.append(name)
            return None
