"""
StuckJobReclaimer -- Returns abandoned PROCESSING jobs to PENDING.

The lease is the only recovery mechanism for a worker that crashed or hung
mid-job.  Reclaiming does not interrupt in-flight work; it only lets
another worker pick the job up.  Idempotent and cheap enough to run on
every tick.
"""

from __future__ import annotations

from typing import Callable, Iterable

from sqlalchemy.orm import Session

from hr_kernel.db.engine import session_scope
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.logging_config import get_logger

from hr_automation.domain.policy import LeasePolicy
from hr_automation.domain.types import QueueKind
from hr_automation.services.job_store import QueueJobStore

logger = get_logger("automation.reclaimer")


class StuckJobReclaimer:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        lease: LeasePolicy | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._lease = lease or LeasePolicy()

    def release(self, kind: QueueKind) -> int:
        """Reset expired or lease-less PROCESSING jobs of one queue."""
        stale_before = self._lease.stale_before(self._clock.now())
        with session_scope(self._session_factory) as session:
            released = QueueJobStore(session, self._clock).release_stuck(kind, stale_before)
        if released:
            logger.warning(
                "stuck_jobs_released",
                extra={"queue": kind.value, "released": released},
            )
        return released

    def release_all(self, kinds: Iterable[QueueKind] = tuple(QueueKind)) -> dict[str, int]:
        return {kind.value: self.release(kind) for kind in kinds}
