"""
OpsReporter -- Read-only aggregation and operator actions for the queues.

Contract:
    Backs the administrative surface: ``summary()``, ``list_jobs()`` and
    ``health_check()`` only read; ``rescan_now()``, ``release_stuck_now()``
    and ``requeue()`` are the operator actions.  Error text leaves this
    module redacted (emails and long numeric identifiers replaced).

Architecture: hr_automation/services.  Reads through the selectors, writes
    only through the job store, scanner and reclaimer.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from hr_kernel.db.engine import session_scope
from hr_kernel.domain.clock import Clock, SystemClock, as_utc
from hr_kernel.exceptions import UnknownQueueError
from hr_kernel.logging_config import get_logger

from hr_config.schema import DEFAULT_EMPLOYEE_FIELDS, OpsSettings

from hr_automation.domain.diagnostics import diagnose, redact_error
from hr_automation.domain.policy import LeasePolicy, age_minutes
from hr_automation.domain.types import (
    HealthReport,
    JobListFilter,
    JobPage,
    OpsSummary,
    QueueHealth,
    QueueJob,
    QueueJobRow,
    QueueKind,
)
from hr_automation.selectors.employee_selector import EmployeeSelector
from hr_automation.selectors.queue_selector import QueueSelector
from hr_automation.services.job_store import QueueJobStore
from hr_automation.services.reclaimer import StuckJobReclaimer
from hr_automation.services.scanner import CandidateScanner

if TYPE_CHECKING:
    from hr_automation.services.scheduler import AutomationScheduler

logger = get_logger("automation.ops")

_DONE_LOOKBACK = timedelta(hours=24)


def parse_queue(queue: QueueKind | str) -> QueueKind:
    """Accept a ``QueueKind`` or its name.

    Raises:
        UnknownQueueError: If the name matches no queue.
    """
    if isinstance(queue, QueueKind):
        return queue
    try:
        return QueueKind(str(queue).strip().lower())
    except ValueError:
        raise UnknownQueueError(str(queue)) from None


class OpsReporter:
    """Operator view over both queues and the employee population."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        scanner: CandidateScanner,
        reclaimer: StuckJobReclaimer,
        clock: Clock | None = None,
        settings: OpsSettings | None = None,
        lease: LeasePolicy | None = None,
        marker_fields: tuple[str, ...] = DEFAULT_EMPLOYEE_FIELDS,
        marker_prefix: str = "enc:v",
        scheduler: AutomationScheduler | None = None,
    ):
        self._session_factory = session_factory
        self._scanner = scanner
        self._reclaimer = reclaimer
        self._clock = clock or SystemClock()
        self._settings = settings or OpsSettings()
        self._lease = lease or LeasePolicy()
        self._marker_fields = marker_fields
        self._marker_prefix = marker_prefix
        self._scheduler = scheduler

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    def summary(self) -> OpsSummary:
        now = self._clock.now()
        stale_before = self._lease.stale_before(now)
        with session_scope(self._session_factory) as session:
            queues = QueueSelector(session)
            employees = EmployeeSelector(session)

            histograms = {kind.value: queues.status_counts(kind) for kind in QueueKind}
            oldest_pending = [
                created
                for created in (queues.oldest_pending_created_at(kind) for kind in QueueKind)
                if created is not None
            ]
            done_5m = sum(
                queues.count_done_since(kind, now - timedelta(minutes=5)) for kind in QueueKind
            )
            done_15m = sum(
                queues.count_done_since(kind, now - timedelta(minutes=15)) for kind in QueueKind
            )
            errors_15m = sum(
                queues.count_errors_since(kind, now - timedelta(minutes=15)) for kind in QueueKind
            )
            stuck = sum(queues.count_stuck(kind, stale_before) for kind in QueueKind)

            active_without_user = employees.count_active_without_user()
            active_not_encrypted = employees.count_active_not_encrypted()
            plaintext = employees.count_plaintext_despite_flag(
                self._marker_fields, self._marker_prefix,
            )

        return OpsSummary(
            generated_at=now,
            queues=histograms,
            active_without_user=active_without_user,
            active_not_encrypted=active_not_encrypted,
            plaintext_detected=plaintext,
            oldest_pending_age_minutes=age_minutes(
                min(oldest_pending, key=as_utc) if oldest_pending else None, now,
            ),
            throughput_per_minute_5m=round(done_5m / 5, 2),
            throughput_per_minute_15m=round(done_15m / 15, 2),
            errors_last_15m=errors_15m,
            stuck_processing=stuck,
            tick_interval_seconds=(
                self._scheduler.tick_interval_seconds if self._scheduler is not None else 0.0
            ),
            scheduler_running=self._scheduler.is_running if self._scheduler is not None else False,
        )

    def list_jobs(
        self, queue: QueueKind | str, filters: JobListFilter | None = None,
    ) -> JobPage:
        """One page of jobs with redacted errors and diagnostics.

        ``include_done`` without a creation date range looks back 24 hours.
        """
        kind = parse_queue(queue)
        filters = filters or JobListFilter()
        now = self._clock.now()

        page = max(filters.page, 1)
        limit = (
            self._settings.max_page_size_with_done
            if filters.include_done
            else self._settings.max_page_size
        )
        page_size = min(max(filters.page_size or self._settings.default_page_size, 1), limit)
        if filters.include_done and filters.created_from is None and filters.created_to is None:
            filters = replace(filters, created_from=now - _DONE_LOOKBACK)

        with session_scope(self._session_factory) as session:
            total, jobs = QueueSelector(session).list_jobs(
                kind, filters, self._lease.stale_before(now), page, page_size,
            )

        return JobPage(
            queue=kind,
            page=page,
            page_size=page_size,
            total=total,
            rows=tuple(self._row(job, now) for job in jobs),
        )

    def health_check(self) -> HealthReport:
        now = self._clock.now()
        stale_before = self._lease.stale_before(now)
        with session_scope(self._session_factory) as session:
            selector = QueueSelector(session)
            queues = tuple(
                QueueHealth(
                    queue=kind,
                    ready_pending=selector.count_ready(kind, now),
                    stuck=selector.count_stuck(kind, stale_before),
                )
                for kind in QueueKind
            )
        return HealthReport(generated_at=now, queues=queues)

    # -------------------------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------------------------

    def rescan_now(self) -> dict[str, int]:
        logger.info("ops_rescan_requested")
        return self._scanner.scan_all()

    def release_stuck_now(self) -> dict[str, int]:
        logger.info("ops_release_stuck_requested")
        return self._reclaimer.release_all()

    def requeue(self, queue: QueueKind | str, job_id: UUID | str) -> QueueJobRow:
        """Reset a non-DONE job to PENDING.

        Raises:
            UnknownQueueError: unknown queue name.
            QueueJobNotFoundError: no such job.
            QueueJobNotRequeueableError: the job is DONE.
        """
        kind = parse_queue(queue)
        job_uuid = job_id if isinstance(job_id, UUID) else UUID(str(job_id))
        with session_scope(self._session_factory) as session:
            job = QueueJobStore(session, self._clock).requeue(kind, job_uuid)
        return self._row(job, self._clock.now())

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _row(self, job: QueueJob, now: datetime) -> QueueJobRow:
        return QueueJobRow(
            job_id=job.job_id,
            queue=job.queue,
            employee_id=job.employee_id,
            status=job.status,
            attempts=job.attempts,
            next_retry_at=job.next_retry_at,
            locked_by=job.locked_by,
            locked_at=job.locked_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
            last_error=redact_error(job.last_error),
            diagnostic=diagnose(job, now, self._lease),
        )
