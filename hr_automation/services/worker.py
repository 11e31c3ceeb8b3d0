"""
QueueWorker -- Claims and processes one batch of jobs from one queue.

Contract:
    ``run_batch(kind, batch_size)`` lists up to ``batch_size`` ready jobs
    (oldest created first), claims each one atomically and hands it to the
    queue's task.  Never raises for a single job's failure; the failure is
    recorded on the job and the batch continues.

Transaction boundaries:
    1. Claim: own transaction, committed before any work starts, so the
       lease is visible to other instances and to the reclaimer.
    2. Work: the task's changes and the DONE transition commit together.
    3. Failure: the work transaction is rolled back and the failure is
       recorded in a fresh transaction.

Failure classification:
    - ``QueueTerminalError``: its ``terminal_status``, no retry.
    - Anything else: transient.  ``RetryPolicy`` decides between PENDING with
      a backoff and ERROR_FATAL once attempts are exhausted.
    - A fenced transition that matches no row means the lease was reclaimed
      by someone else; the outcome is LEASE_LOST and nothing is written.
"""

from __future__ import annotations

import os
import socket
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from hr_kernel.db.engine import session_scope
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import QueueTerminalError
from hr_kernel.logging_config import LogContext, get_logger

from hr_automation.domain.diagnostics import redact_error
from hr_automation.domain.policy import RetryPolicy
from hr_automation.domain.types import (
    BatchRunResult,
    JobOutcome,
    QueueJob,
    QueueJobStatus,
    QueueKind,
)
from hr_automation.services.job_store import QueueJobStore
from hr_automation.tasks.base import QueueTask, QueueTaskRegistry

logger = get_logger("automation.worker")

_WORKER_ID_MAX_LENGTH = 80


def default_worker_id() -> str:
    """``<host>:<pid>:<random>``, unique per worker instance."""
    worker_id = f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"
    return worker_id[-_WORKER_ID_MAX_LENGTH:]


class QueueWorker:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        task_registry: QueueTaskRegistry,
        clock: Clock | None = None,
        worker_id: str | None = None,
        retry_policy: RetryPolicy | None = None,
        last_error_max_length: int = 500,
    ):
        self._session_factory = session_factory
        self._registry = task_registry
        self._clock = clock or SystemClock()
        self._worker_id = worker_id or default_worker_id()
        self._retry = retry_policy or RetryPolicy()
        self._error_limit = last_error_max_length

    @property
    def worker_id(self) -> str:
        return self._worker_id

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_batch(self, kind: QueueKind, batch_size: int) -> BatchRunResult:
        task = self._registry.get(kind)
        with session_scope(self._session_factory) as session:
            job_ids = self._store(session).ready_job_ids(kind, batch_size)

        outcomes: dict[JobOutcome, int] = {outcome: 0 for outcome in JobOutcome}
        claimed = claim_lost = 0

        with LogContext.bind(worker_id=self._worker_id, queue=kind):
            for job_id in job_ids:
                job = self._claim(kind, job_id)
                if job is None:
                    claim_lost += 1
                    continue
                claimed += 1
                with LogContext.bind(job_id=job.job_id, employee_id=job.employee_id):
                    outcomes[self._process(task, job)] += 1

        return BatchRunResult(
            queue=kind,
            claimed=claimed,
            done=outcomes[JobOutcome.DONE],
            retried=outcomes[JobOutcome.RETRY_SCHEDULED],
            terminal=outcomes[JobOutcome.TERMINAL],
            claim_lost=claim_lost,
            lease_lost=outcomes[JobOutcome.LEASE_LOST],
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _store(self, session: Session) -> QueueJobStore:
        return QueueJobStore(session, self._clock, self._error_limit)

    def _claim(self, kind: QueueKind, job_id: UUID) -> QueueJob | None:
        with session_scope(self._session_factory) as session:
            job = self._store(session).claim(kind, job_id, self._worker_id)
        if job is None:
            logger.info("queue_job_claim_lost", extra={"job_id": str(job_id)})
            return None
        logger.info(
            "queue_job_claimed",
            extra={
                "job_id": str(job.job_id),
                "employee_id": str(job.employee_id),
                "attempts": job.attempts,
            },
        )
        return job

    def _process(self, task: QueueTask, job: QueueJob) -> JobOutcome:
        session = self._session_factory()
        try:
            try:
                task.process(job, session, self._clock.now())
                if not self._store(session).mark_done(job, self._worker_id):
                    session.rollback()
                    logger.warning("queue_job_lease_lost", extra={"transition": "done"})
                    return JobOutcome.LEASE_LOST
                session.commit()
            except Exception as exc:
                session.rollback()
                return self._record_failure(job, exc)
        finally:
            session.close()

        logger.info("queue_job_done", extra={"attempts": job.attempts})
        return JobOutcome.DONE

    def _record_failure(self, job: QueueJob, exc: Exception) -> JobOutcome:
        error = f"{type(exc).__name__}: {exc}"
        fields = {
            "attempts": job.attempts,
            "error_type": type(exc).__name__,
            "error_code": getattr(exc, "code", None),
            "error": redact_error(str(exc), self._error_limit),
        }

        with session_scope(self._session_factory) as session:
            store = self._store(session)
            if isinstance(exc, QueueTerminalError):
                status = QueueJobStatus(exc.terminal_status)
                recorded = store.mark_terminal(job, status, error, self._worker_id)
                event, outcome = "queue_job_terminal", JobOutcome.TERMINAL
            else:
                decision = self._retry.decide(job.attempts, self._clock.now())
                status = decision.status
                if decision.status is QueueJobStatus.PENDING:
                    recorded = store.schedule_retry(
                        job, error, decision.next_retry_at, self._worker_id,
                    )
                    event, outcome = "queue_job_retry_scheduled", JobOutcome.RETRY_SCHEDULED
                    fields["next_retry_at"] = decision.next_retry_at
                else:
                    recorded = store.mark_terminal(job, status, error, self._worker_id)
                    event, outcome = "queue_job_retries_exhausted", JobOutcome.TERMINAL

        if not recorded:
            logger.warning("queue_job_lease_lost", extra={"transition": status.value})
            return JobOutcome.LEASE_LOST

        logger.warning(event, extra={"status": status.value, **fields})
        return outcome
