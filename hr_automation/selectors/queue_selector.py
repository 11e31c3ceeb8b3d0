"""
QueueSelector -- Read-only queries over the two queue tables.

Backs the ops reporter and the backlog snapshot.  Every method takes the
``QueueKind`` it reads from; time boundaries are passed in by the caller.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, case, func, or_, select, true

from hr_automation.domain.types import (
    ERROR_STATUSES,
    JobListFilter,
    QueueJob,
    QueueJobStatus,
    QueueKind,
)
from hr_automation.models.queue import job_from_row, queue_table
from hr_automation.selectors.base import BaseSelector

_ERROR_VALUES = tuple(sorted(s.value for s in ERROR_STATUSES))


class QueueSelector(BaseSelector):
    """Counts, ages and filtered listings of queue jobs."""

    def status_counts(self, queue: QueueKind) -> dict[str, int]:
        """Job count per status; every status is present, zero when empty."""
        table = queue_table(queue)
        rows = self.session.execute(
            select(table.c.status, func.count()).group_by(table.c.status)
        ).all()
        counts = {status.value: 0 for status in QueueJobStatus}
        for status, count in rows:
            counts[status] = count
        return counts

    def oldest_pending_created_at(self, queue: QueueKind) -> datetime | None:
        table = queue_table(queue)
        return self.session.execute(
            select(func.min(table.c.created_at)).where(
                table.c.status == QueueJobStatus.PENDING.value,
            )
        ).scalar()

    def count_ready(self, queue: QueueKind, now: datetime) -> int:
        table = queue_table(queue)
        return self.session.execute(
            select(func.count()).select_from(table).where(
                table.c.status == QueueJobStatus.PENDING.value,
                or_(table.c.next_retry_at.is_(None), table.c.next_retry_at <= now),
            )
        ).scalar_one()

    def count_stuck(self, queue: QueueKind, stale_before: datetime) -> int:
        table = queue_table(queue)
        return self.session.execute(
            select(func.count()).select_from(table).where(self._stuck(table, stale_before))
        ).scalar_one()

    def count_done_since(self, queue: QueueKind, since: datetime) -> int:
        table = queue_table(queue)
        return self.session.execute(
            select(func.count()).select_from(table).where(
                table.c.status == QueueJobStatus.DONE.value,
                table.c.updated_at >= since,
            )
        ).scalar_one()

    def count_errors_since(self, queue: QueueKind, since: datetime) -> int:
        table = queue_table(queue)
        return self.session.execute(
            select(func.count()).select_from(table).where(
                table.c.status.in_(_ERROR_VALUES),
                table.c.updated_at >= since,
            )
        ).scalar_one()

    def list_jobs(
        self,
        queue: QueueKind,
        filters: JobListFilter,
        stale_before: datetime,
        page: int,
        page_size: int,
    ) -> tuple[int, list[QueueJob]]:
        """Filtered, ordered page of jobs plus the total match count.

        Order: PENDING then PROCESSING (oldest created first), then errors,
        then DONE (most recently updated first).  DONE jobs are left out
        unless asked for by status or ``include_done``.
        """
        table = queue_table(queue)
        conditions = []

        if filters.status is not None:
            conditions.append(table.c.status == filters.status.value)
        elif not filters.include_done:
            conditions.append(table.c.status != QueueJobStatus.DONE.value)
        if filters.employee_id is not None:
            conditions.append(table.c.employee_id == filters.employee_id)
        if filters.attempts_min is not None:
            conditions.append(table.c.attempts >= filters.attempts_min)
        if filters.created_from is not None:
            conditions.append(table.c.created_at >= filters.created_from)
        if filters.created_to is not None:
            conditions.append(table.c.created_at <= filters.created_to)
        if filters.locked_only:
            conditions.append(table.c.locked_by.is_not(None))
        if filters.stuck_only:
            conditions.append(self._stuck(table, stale_before))

        where = and_(true(), *conditions)
        total = self.session.execute(
            select(func.count()).select_from(table).where(where)
        ).scalar_one()

        rank = case(
            (table.c.status == QueueJobStatus.PENDING.value, 0),
            (table.c.status == QueueJobStatus.PROCESSING.value, 1),
            (table.c.status == QueueJobStatus.DONE.value, 3),
            else_=2,
        )
        outstanding_created = case(
            (
                table.c.status.in_(
                    (QueueJobStatus.PENDING.value, QueueJobStatus.PROCESSING.value)
                ),
                table.c.created_at,
            ),
            else_=None,
        )
        rows = self.session.execute(
            select(table)
            .where(where)
            .order_by(
                rank,
                outstanding_created.asc(),
                table.c.updated_at.desc(),
                table.c.id.asc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return total, [job_from_row(queue, row) for row in rows]

    @staticmethod
    def _stuck(table, stale_before: datetime):
        return and_(
            table.c.status == QueueJobStatus.PROCESSING.value,
            or_(table.c.locked_at.is_(None), table.c.locked_at < stale_before),
        )
