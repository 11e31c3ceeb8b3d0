"""
hr_automation.domain.policy -- Pure queue policies.

ZERO I/O.  Time is always passed in; nothing here reads a clock.

Contents:
    - ``dedupe_key``: canonical "<queue>:<employee_id>" key.
    - ``RetryPolicy``: linear backoff (attempts x base delay), capped at a
      fixed number of attempts.
    - ``LeasePolicy``: when a PROCESSING lease counts as abandoned.
    - ``RetentionPolicy``: age cut-offs per terminal category.
    - ``is_ready``: whether a PENDING job may be claimed now.
    - ``age_minutes`` / ``is_due``: elapsed-time helpers for the scheduler
      and the ops reporter.
    - ``truncate_error``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from hr_kernel.domain.clock import as_utc

from hr_automation.domain.types import (
    QueueJob,
    QueueJobStatus,
    QueueKind,
)

DEDUPE_KEY_MAX_LENGTH = 120


def dedupe_key(queue: QueueKind, employee_id: UUID) -> str:
    key = f"{queue.value}:{employee_id}"
    if len(key) > DEDUPE_KEY_MAX_LENGTH:
        raise ValueError(f"Dedupe key exceeds {DEDUPE_KEY_MAX_LENGTH} characters: {key!r}")
    return key


def truncate_error(message: str | None, limit: int = 500) -> str | None:
    if message is None:
        return None
    return message[:limit]


@dataclass(frozen=True)
class RetryDecision:
    """Where a transiently failed job goes next."""

    status: QueueJobStatus
    next_retry_at: datetime | None


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff with an attempt ceiling.

    ``attempts`` is the value after the claim that just failed, so the first
    failure waits one base delay, the second two, and so on.  Reaching
    ``max_attempts`` escalates to ERROR_FATAL instead of retrying.
    """

    max_attempts: int = 5
    backoff_seconds: int = 60

    def is_exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def delay(self, attempts: int) -> timedelta:
        return timedelta(seconds=max(attempts, 1) * self.backoff_seconds)

    def decide(self, attempts: int, now: datetime) -> RetryDecision:
        if self.is_exhausted(attempts):
            return RetryDecision(status=QueueJobStatus.ERROR_FATAL, next_retry_at=None)
        return RetryDecision(
            status=QueueJobStatus.PENDING,
            next_retry_at=now + self.delay(attempts),
        )


@dataclass(frozen=True)
class LeasePolicy:
    """A lease older than ``timeout`` (or with no lock time) is abandoned."""

    timeout: timedelta = timedelta(minutes=10)

    def stale_before(self, now: datetime) -> datetime:
        return now - self.timeout

    def is_expired(self, locked_at: datetime | None, now: datetime) -> bool:
        if locked_at is None:
            return True
        return as_utc(locked_at) < as_utc(self.stale_before(now))

    def is_stuck(self, job: QueueJob, now: datetime) -> bool:
        return job.status is QueueJobStatus.PROCESSING and self.is_expired(job.locked_at, now)


@dataclass(frozen=True)
class RetentionCutoffs:
    done_before: datetime
    error_before: datetime
    processing_before: datetime


@dataclass(frozen=True)
class RetentionPolicy:
    """Age limits, measured on ``updated_at``, after which jobs are deleted.

    PENDING jobs have no limit; the store never purges them.
    """

    done_days: int = 30
    error_days: int = 90
    processing_days: int = 7

    def cutoffs(self, now: datetime) -> RetentionCutoffs:
        return RetentionCutoffs(
            done_before=now - timedelta(days=self.done_days),
            error_before=now - timedelta(days=self.error_days),
            processing_before=now - timedelta(days=self.processing_days),
        )


def is_ready(job: QueueJob, now: datetime) -> bool:
    """PENDING and either never scheduled for retry or due."""
    if job.status is not QueueJobStatus.PENDING:
        return False
    return job.next_retry_at is None or as_utc(job.next_retry_at) <= as_utc(now)


def age_minutes(since: datetime | None, now: datetime) -> int | None:
    """Whole minutes elapsed since ``since`` (never negative)."""
    if since is None:
        return None
    elapsed = as_utc(now) - as_utc(since)
    return max(int(elapsed.total_seconds() // 60), 0)


def is_due(last_run_at: datetime | None, interval: timedelta, now: datetime) -> bool:
    """Rate limit check: never run, or at least ``interval`` since the last run."""
    if last_run_at is None:
        return True
    return as_utc(now) - as_utc(last_run_at) >= interval
