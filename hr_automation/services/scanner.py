"""
CandidateScanner -- Discovers eligible employees and enqueues their jobs.

Contract:
    ``scan(kind)`` asks the queue's task for up to ``batch_size`` candidate
    employees and enqueues one job per employee in a single transaction.
    Safe to run repeatedly and concurrently with processing: the dedupe key
    turns a second enqueue for the same employee into a no-op.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from hr_kernel.db.engine import session_scope
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.logging_config import get_logger

from hr_automation.domain.types import QueueKind
from hr_automation.services.job_store import QueueJobStore
from hr_automation.tasks.base import QueueTaskRegistry

logger = get_logger("automation.scanner")


class CandidateScanner:
    """Runs the candidate scan for each registered queue."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        task_registry: QueueTaskRegistry,
        clock: Clock | None = None,
        batch_size: int = 200,
    ):
        self._session_factory = session_factory
        self._registry = task_registry
        self._clock = clock or SystemClock()
        self._batch_size = batch_size

    def scan(self, kind: QueueKind) -> int:
        """Enqueue jobs for new candidates of one queue.

        Returns the number of jobs actually inserted.
        """
        task = self._registry.get(kind)
        with session_scope(self._session_factory) as session:
            store = QueueJobStore(session, self._clock)
            candidates = task.find_candidates(session, self._batch_size)
            enqueued = sum(1 for employee_id in candidates if store.enqueue(kind, employee_id))

        logger.info(
            "candidate_scan_completed",
            extra={"queue": kind.value, "candidates": len(candidates), "enqueued": enqueued},
        )
        return enqueued

    def scan_all(self) -> dict[str, int]:
        """Scan every registered queue; returns enqueued counts by queue name."""
        return {kind.value: self.scan(kind) for kind in self._registry.kinds()}
