"""
ORM models for the two automation queues.

Contract:
    ``IdentityQueueJobModel`` and ``EncryptQueueJobModel`` share one column
    set (``QueueJobColumns``) but live in separate tables with their own
    unique dedupe keys, so the queues never interfere.  ``queue_model()``
    maps a ``QueueKind`` to its model.

Architecture: hr_automation/models.  Imports from hr_kernel.db.base only
    (plus the pure domain types).

Invariants enforced:
    - ``dedupe_key`` is UNIQUE per table: at most one job row per
      (queue, employee).
    - ``last_error`` is bounded to 500 characters; ``locked_by`` to 80.
    - Timestamps are written by the store from the injected Clock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, Table
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from hr_kernel.db.base import Base, UUIDString

from hr_automation.domain.types import QueueJob, QueueJobStatus, QueueKind


class QueueJobColumns:
    """Column set shared by both queue tables."""

    queue_kind: ClassVar[QueueKind]

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        name = cls.__tablename__
        return (
            Index(f"ix_{name}_ready", "status", "next_retry_at", "created_at"),
            Index(f"ix_{name}_employee", "employee_id"),
            Index(f"ix_{name}_stuck", "status", "locked_at"),
            Index(f"ix_{name}_retention", "status", "updated_at"),
        )

    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    dedupe_key: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=QueueJobStatus.PENDING.value,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_retry_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    locked_by: Mapped[str | None] = mapped_column(String(80), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_error: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> QueueJob:
        return QueueJob(
            job_id=self.id,
            queue=self.queue_kind,
            employee_id=self.employee_id,
            dedupe_key=self.dedupe_key,
            status=QueueJobStatus(self.status),
            attempts=self.attempts,
            next_retry_at=self.next_retry_at,
            locked_by=self.locked_by,
            locked_at=self.locked_at,
            last_error=self.last_error,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class IdentityQueueJobModel(QueueJobColumns, Base):
    """Pending identity-provisioning work, one row per employee."""

    __tablename__ = "employee_identity_queue"
    queue_kind = QueueKind.IDENTITY


class EncryptQueueJobModel(QueueJobColumns, Base):
    """Pending encryption-at-rest work, one row per employee."""

    __tablename__ = "employee_encrypt_queue"
    queue_kind = QueueKind.ENCRYPT


_MODELS: dict[QueueKind, type[IdentityQueueJobModel] | type[EncryptQueueJobModel]] = {
    QueueKind.IDENTITY: IdentityQueueJobModel,
    QueueKind.ENCRYPT: EncryptQueueJobModel,
}


def queue_model(queue: QueueKind) -> type[IdentityQueueJobModel] | type[EncryptQueueJobModel]:
    return _MODELS[queue]


def queue_table(queue: QueueKind) -> Table:
    return _MODELS[queue].__table__


def job_from_row(queue: QueueKind, row: Any) -> QueueJob:
    """Build a snapshot from a Core result row of a queue table."""
    m = row._mapping
    return QueueJob(
        job_id=m["id"],
        queue=queue,
        employee_id=m["employee_id"],
        dedupe_key=m["dedupe_key"],
        status=QueueJobStatus(m["status"]),
        attempts=m["attempts"],
        next_retry_at=m["next_retry_at"],
        locked_by=m["locked_by"],
        locked_at=m["locked_at"],
        last_error=m["last_error"],
        created_at=m["created_at"],
        updated_at=m["updated_at"],
    )
