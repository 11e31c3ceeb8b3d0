"""
hr_automation.domain -- Pure types, policies and diagnostics.

ZERO I/O.  All types are frozen dataclasses.
"""

from hr_automation.domain.types import (
    ERROR_STATUSES,
    OUTSTANDING_STATUSES,
    BacklogSnapshot,
    BatchRunResult,
    HealthReport,
    JobListFilter,
    JobOutcome,
    JobPage,
    OpsSummary,
    QueueHealth,
    QueueJob,
    QueueJobRow,
    QueueJobStatus,
    QueueKind,
    RetentionResult,
    TickResult,
)

__all__ = [
    "ERROR_STATUSES",
    "OUTSTANDING_STATUSES",
    "BacklogSnapshot",
    "BatchRunResult",
    "HealthReport",
    "JobListFilter",
    "JobOutcome",
    "JobPage",
    "OpsSummary",
    "QueueHealth",
    "QueueJob",
    "QueueJobRow",
    "QueueJobStatus",
    "QueueKind",
    "RetentionResult",
    "TickResult",
]
