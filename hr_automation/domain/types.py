"""
hr_automation.domain.types -- Pure frozen dataclasses for the automation queues.

ZERO I/O.  Queue jobs cross layer boundaries only as these immutable
snapshots; ORM rows never leave the store and selector modules.

Invariants enforced:
    - Job snapshots are frozen dataclasses (a processed snapshot is never
      mutated in place; the store returns a fresh one after each transition).
    - ``QueueJobStatus`` is the complete lifecycle: PENDING -> PROCESSING ->
      DONE | PENDING (retry) | ERROR_*.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class QueueKind(str, Enum):
    """The two independent queues."""

    IDENTITY = "identity"  # provision a login identity
    ENCRYPT = "encrypt"  # migrate personal data to encrypted form


class QueueJobStatus(str, Enum):
    """Job lifecycle status."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    ERROR_CONFIG = "ERROR_CONFIG"
    ERROR_DUPLICATE = "ERROR_DUPLICATE"
    ERROR_PERM = "ERROR_PERM"
    ERROR_FATAL = "ERROR_FATAL"

    @property
    def is_error(self) -> bool:
        return self in ERROR_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self is QueueJobStatus.DONE or self in ERROR_STATUSES


ERROR_STATUSES: frozenset[QueueJobStatus] = frozenset({
    QueueJobStatus.ERROR_CONFIG,
    QueueJobStatus.ERROR_DUPLICATE,
    QueueJobStatus.ERROR_PERM,
    QueueJobStatus.ERROR_FATAL,
})

OUTSTANDING_STATUSES: frozenset[QueueJobStatus] = frozenset({
    QueueJobStatus.PENDING,
    QueueJobStatus.PROCESSING,
})


class JobOutcome(str, Enum):
    """What the worker did with one claimed job."""

    DONE = "done"
    RETRY_SCHEDULED = "retry_scheduled"
    TERMINAL = "terminal"
    LEASE_LOST = "lease_lost"  # lease reclaimed by someone else mid-flight


# =============================================================================
# Job snapshot
# =============================================================================


@dataclass(frozen=True)
class QueueJob:
    """Immutable snapshot of one queue job row.

    ``locked_by`` / ``locked_at`` are non-null iff status is PROCESSING.
    ``attempts`` counts claims and never decreases.
    """

    job_id: UUID
    queue: QueueKind
    employee_id: UUID
    dedupe_key: str
    status: QueueJobStatus
    attempts: int = 0
    next_retry_at: datetime | None = None
    locked_by: str | None = None
    locked_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Run results
# =============================================================================


@dataclass(frozen=True)
class BatchRunResult:
    """Outcome of one processing batch on one queue."""

    queue: QueueKind
    claimed: int = 0
    done: int = 0
    retried: int = 0
    terminal: int = 0
    claim_lost: int = 0
    lease_lost: int = 0


@dataclass(frozen=True)
class RetentionResult:
    """Rows deleted by one retention pass on one queue."""

    queue: QueueKind
    done_purged: int = 0
    error_purged: int = 0
    processing_purged: int = 0

    @property
    def total(self) -> int:
        return self.done_purged + self.error_purged + self.processing_purged


@dataclass(frozen=True)
class BacklogSnapshot:
    """Per-status counts and oldest pending age for one queue."""

    queue: QueueKind
    status_counts: dict[str, int] = field(default_factory=dict)
    oldest_pending_age_minutes: int | None = None


@dataclass(frozen=True)
class TickResult:
    """Everything one scheduler tick did.

    ``skipped`` is True when the tick overlapped a running one and did nothing.
    ``failed_steps`` names steps that raised and were logged.
    """

    skipped: bool = False
    released: dict[str, int] = field(default_factory=dict)
    enqueued: dict[str, int] = field(default_factory=dict)
    batches: tuple[BatchRunResult, ...] = ()
    backlog: tuple[BacklogSnapshot, ...] = ()
    retention: tuple[RetentionResult, ...] = ()
    failed_steps: tuple[str, ...] = ()


# =============================================================================
# Ops reporting
# =============================================================================


@dataclass(frozen=True)
class JobListFilter:
    """Filters for ``OpsReporter.list_jobs``."""

    status: QueueJobStatus | None = None
    employee_id: UUID | None = None
    attempts_min: int | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    locked_only: bool = False
    stuck_only: bool = False
    include_done: bool = False
    page: int = 1
    page_size: int | None = None


@dataclass(frozen=True)
class QueueJobRow:
    """One row of a job listing, safe to show to an operator."""

    job_id: UUID
    queue: QueueKind
    employee_id: UUID
    status: QueueJobStatus
    attempts: int
    next_retry_at: datetime | None
    locked_by: str | None
    locked_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None
    last_error: str | None  # redacted
    diagnostic: str


@dataclass(frozen=True)
class JobPage:
    queue: QueueKind
    page: int
    page_size: int
    total: int
    rows: tuple[QueueJobRow, ...] = ()


@dataclass(frozen=True)
class OpsSummary:
    """Snapshot of both queues and the employee population."""

    generated_at: datetime
    queues: dict[str, dict[str, int]]
    active_without_user: int
    active_not_encrypted: int
    plaintext_detected: int
    oldest_pending_age_minutes: int | None
    throughput_per_minute_5m: float
    throughput_per_minute_15m: float
    errors_last_15m: int
    stuck_processing: int
    tick_interval_seconds: float
    scheduler_running: bool


@dataclass(frozen=True)
class QueueHealth:
    queue: QueueKind
    ready_pending: int
    stuck: int


@dataclass(frozen=True)
class HealthReport:
    generated_at: datetime
    queues: tuple[QueueHealth, ...]

    @property
    def healthy(self) -> bool:
        return all(q.stuck == 0 for q in self.queues)
