"""
EmployeeSelector -- Candidate discovery and population counts.

An employee is a candidate for a queue when it qualifies AND has no job row
of any status in that queue.  Excluding every existing row (not only the
outstanding ones) keeps a batch from filling up with employees whose insert
would be ignored by the dedupe key anyway.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, exists, func, or_, select

from hr_kernel.models.employee import Employee

from hr_automation.domain.types import QueueKind
from hr_automation.models.queue import queue_table
from hr_automation.selectors.base import BaseSelector


def _not_encrypted():
    return or_(Employee.data_encrypted == False, Employee.data_encrypted.is_(None))  # noqa: E712


class EmployeeSelector(BaseSelector):
    """Read-only employee queries used by the scanner and the ops reporter."""

    def identity_candidates(self, limit: int) -> list[UUID]:
        """Active employees without a linked user and without an identity job."""
        return self._candidates(
            QueueKind.IDENTITY,
            and_(Employee.is_active == True, Employee.user_id.is_(None)),  # noqa: E712
            limit,
        )

    def encryption_candidates(self, limit: int) -> list[UUID]:
        """Employees whose data is not flagged encrypted and without an encrypt job."""
        return self._candidates(QueueKind.ENCRYPT, _not_encrypted(), limit)

    def count_active_without_user(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(Employee).where(
                Employee.is_active == True,  # noqa: E712
                Employee.user_id.is_(None),
            )
        ).scalar_one()

    def count_active_not_encrypted(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(Employee).where(
                Employee.is_active == True,  # noqa: E712
                _not_encrypted(),
            )
        ).scalar_one()

    def count_plaintext_despite_flag(
        self, marker_fields: tuple[str, ...], marker_prefix: str,
    ) -> int:
        """Employees flagged encrypted with any personal field not carrying the marker."""
        looks_plain = [
            and_(
                column.is_not(None),
                column != "",
                ~column.like(f"{marker_prefix}%"),
            )
            for column in (getattr(Employee, name) for name in marker_fields)
        ]
        if not looks_plain:
            return 0
        return self.session.execute(
            select(func.count()).select_from(Employee).where(
                Employee.data_encrypted == True,  # noqa: E712
                or_(*looks_plain),
            )
        ).scalar_one()

    def _candidates(self, queue: QueueKind, eligible, limit: int) -> list[UUID]:
        table = queue_table(queue)
        has_job = exists().where(table.c.employee_id == Employee.id)
        stmt = (
            select(Employee.id)
            .where(eligible, ~has_job)
            .order_by(Employee.created_at.asc(), Employee.id.asc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())
