"""
QueueJobStore -- Durable job records and every state transition on them.

Contract:
    One store serves both queues; every call names the ``QueueKind`` (or
    receives a ``QueueJob`` that carries it).  Returns frozen ``QueueJob``
    snapshots, never ORM rows.

Architecture: hr_automation/services.  Flushes through the caller's
    session but never commits; the queue worker, reclaimer and scheduler
    own transaction boundaries.

Invariants enforced:
    - Enqueue is insert-or-ignore on the unique dedupe key: a duplicate is
      silently skipped, never an error.
    - Claim is ONE conditional UPDATE guarded by ``status = 'PENDING'`` (and
      readiness).  The claimed row comes back from the same statement via
      RETURNING where the dialect supports it; otherwise only the session
      whose UPDATE matched exactly one row re-reads it, filtered on its own
      worker id.  Two racing claimants therefore see exactly one winner.
    - Post-claim transitions are fenced on ``status = 'PROCESSING' AND
      locked_by = <worker>``; a worker whose lease was reclaimed cannot
      overwrite the new owner's state.
    - Lease fields are cleared on every transition out of PROCESSING.
    - ``attempts`` is only ever incremented (on claim).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import and_, delete, insert, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import QueueJobNotFoundError, QueueJobNotRequeueableError
from hr_kernel.logging_config import get_logger

from hr_automation.domain.policy import RetentionCutoffs, dedupe_key, truncate_error
from hr_automation.domain.types import (
    ERROR_STATUSES,
    QueueJob,
    QueueJobStatus,
    QueueKind,
    RetentionResult,
)
from hr_automation.models.queue import job_from_row, queue_table

logger = get_logger("automation.job_store")

_ERROR_VALUES = tuple(sorted(s.value for s in ERROR_STATUSES))


class QueueJobStore:
    """Persistence and transitions for queue jobs."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        last_error_max_length: int = 500,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._error_limit = last_error_max_length

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def enqueue(self, queue: QueueKind, employee_id: UUID) -> bool:
        """Insert a PENDING job unless the dedupe key already exists.

        Returns True if a row was inserted.
        """
        table = queue_table(queue)
        now = self._clock.now()
        values = {
            "id": uuid4(),
            "employee_id": employee_id,
            "dedupe_key": dedupe_key(queue, employee_id),
            "status": QueueJobStatus.PENDING.value,
            "attempts": 0,
            "created_at": now,
            "updated_at": now,
        }

        dialect = self._dialect_name()
        if dialect in ("postgresql", "sqlite"):
            builder = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = builder(table).values(**values).on_conflict_do_nothing(
                index_elements=["dedupe_key"],
            )
            inserted = self._session.execute(stmt).rowcount == 1
        else:
            try:
                with self._session.begin_nested():
                    self._session.execute(insert(table).values(**values))
                inserted = True
            except IntegrityError:
                inserted = False

        if inserted:
            logger.info(
                "queue_job_enqueued",
                extra={"queue": queue.value, "employee_id": str(employee_id)},
            )
        return inserted

    # -------------------------------------------------------------------------
    # Reads used by the worker
    # -------------------------------------------------------------------------

    def get(self, queue: QueueKind, job_id: UUID) -> QueueJob | None:
        table = queue_table(queue)
        row = self._session.execute(select(table).where(table.c.id == job_id)).first()
        return job_from_row(queue, row) if row is not None else None

    def ready_job_ids(self, queue: QueueKind, limit: int) -> list[UUID]:
        """Ids of claimable jobs, oldest created first."""
        table = queue_table(queue)
        now = self._clock.now()
        stmt = (
            select(table.c.id)
            .where(table.c.status == QueueJobStatus.PENDING.value, self._due(table, now))
            .order_by(table.c.created_at.asc(), table.c.id.asc())
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars())

    # -------------------------------------------------------------------------
    # Claim
    # -------------------------------------------------------------------------

    def claim(self, queue: QueueKind, job_id: UUID, worker_id: str) -> QueueJob | None:
        """Atomically move a ready PENDING job to PROCESSING under ``worker_id``.

        Returns the post-claim snapshot, or None if another claimant won or
        the job is no longer ready.
        """
        table = queue_table(queue)
        now = self._clock.now()
        stmt = (
            update(table)
            .where(
                table.c.id == job_id,
                table.c.status == QueueJobStatus.PENDING.value,
                self._due(table, now),
            )
            .values(
                status=QueueJobStatus.PROCESSING.value,
                locked_by=worker_id,
                locked_at=now,
                attempts=table.c.attempts + 1,
                last_error=None,
                updated_at=now,
            )
        )

        if self._session.get_bind().dialect.update_returning:
            row = self._session.execute(stmt.returning(*table.c)).first()
            if row is None:
                return None
            return job_from_row(queue, row)

        if self._session.execute(stmt).rowcount != 1:
            return None
        row = self._session.execute(
            select(table).where(
                table.c.id == job_id,
                table.c.status == QueueJobStatus.PROCESSING.value,
                table.c.locked_by == worker_id,
            )
        ).first()
        return job_from_row(queue, row) if row is not None else None

    # -------------------------------------------------------------------------
    # Post-claim transitions (fenced on the lease)
    # -------------------------------------------------------------------------

    def mark_done(self, job: QueueJob, worker_id: str) -> bool:
        return self._transition(
            job,
            worker_id,
            status=QueueJobStatus.DONE.value,
            next_retry_at=None,
            last_error=None,
        )

    def mark_terminal(
        self, job: QueueJob, status: QueueJobStatus, error: str, worker_id: str,
    ) -> bool:
        if not status.is_error:
            raise ValueError(f"{status.value} is not a terminal error status")
        return self._transition(
            job,
            worker_id,
            status=status.value,
            next_retry_at=None,
            last_error=truncate_error(error, self._error_limit),
        )

    def schedule_retry(
        self, job: QueueJob, error: str, next_retry_at: datetime, worker_id: str,
    ) -> bool:
        return self._transition(
            job,
            worker_id,
            status=QueueJobStatus.PENDING.value,
            next_retry_at=next_retry_at,
            last_error=truncate_error(error, self._error_limit),
        )

    def _transition(self, job: QueueJob, worker_id: str, **values: Any) -> bool:
        table = queue_table(job.queue)
        stmt = (
            update(table)
            .where(
                table.c.id == job.job_id,
                table.c.status == QueueJobStatus.PROCESSING.value,
                table.c.locked_by == worker_id,
            )
            .values(
                locked_by=None,
                locked_at=None,
                updated_at=self._clock.now(),
                **values,
            )
        )
        return self._session.execute(stmt).rowcount == 1

    # -------------------------------------------------------------------------
    # Recovery and operator actions
    # -------------------------------------------------------------------------

    def release_stuck(self, queue: QueueKind, stale_before: datetime) -> int:
        """Return abandoned PROCESSING jobs to PENDING.

        A lease is abandoned when ``locked_at`` is older than
        ``stale_before`` or missing altogether.
        """
        table = queue_table(queue)
        stmt = (
            update(table)
            .where(
                table.c.status == QueueJobStatus.PROCESSING.value,
                or_(table.c.locked_at.is_(None), table.c.locked_at < stale_before),
            )
            .values(
                status=QueueJobStatus.PENDING.value,
                locked_by=None,
                locked_at=None,
                updated_at=self._clock.now(),
            )
        )
        return self._session.execute(stmt).rowcount

    def requeue(self, queue: QueueKind, job_id: UUID) -> QueueJob:
        """Reset any non-DONE job to a ready PENDING job.

        ``attempts`` is left as is.

        Raises:
            QueueJobNotFoundError: no such job.
            QueueJobNotRequeueableError: the job is DONE, including when it finishes
                between the read and the update.
        """
        job = self.get(queue, job_id)
        if job is None:
            raise QueueJobNotFoundError(queue.value, job_id)
        if job.status is QueueJobStatus.DONE:
            raise QueueJobNotRequeueableError(queue.value, job_id, job.status.value)

        table = queue_table(queue)
        result = self._session.execute(
            update(table)
            .where(
                table.c.id == job_id,
                table.c.status != QueueJobStatus.DONE.value,
            )
            .values(
                status=QueueJobStatus.PENDING.value,
                next_retry_at=None,
                locked_by=None,
                locked_at=None,
                last_error=None,
                updated_at=self._clock.now(),
            )
        )
        if result.rowcount == 0:
            current = self.get(queue, job_id)
            if current is None:
                raise QueueJobNotFoundError(queue.value, job_id)
            raise QueueJobNotRequeueableError(queue.value, job_id, current.status.value)
        logger.info(
            "queue_job_requeued",
            extra={
                "queue": queue.value,
                "job_id": str(job_id),
                "previous_status": job.status.value,
            },
        )
        requeued = self.get(queue, job_id)
        assert requeued is not None
        return requeued

    def purge(self, queue: QueueKind, cutoffs: RetentionCutoffs) -> RetentionResult:
        """Delete terminal (and long-abandoned PROCESSING) jobs past their age limit."""
        table = queue_table(queue)

        def _delete(condition) -> int:
            return self._session.execute(delete(table).where(condition)).rowcount

        done = _delete(and_(
            table.c.status == QueueJobStatus.DONE.value,
            table.c.updated_at < cutoffs.done_before,
        ))
        errors = _delete(and_(
            table.c.status.in_(_ERROR_VALUES),
            table.c.updated_at < cutoffs.error_before,
        ))
        processing = _delete(and_(
            table.c.status == QueueJobStatus.PROCESSING.value,
            table.c.updated_at < cutoffs.processing_before,
        ))
        return RetentionResult(
            queue=queue,
            done_purged=done,
            error_purged=errors,
            processing_purged=processing,
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @staticmethod
    def _due(table, now: datetime):
        return or_(table.c.next_retry_at.is_(None), table.c.next_retry_at <= now)

    def _dialect_name(self) -> str:
        return self._session.get_bind().dialect.name
