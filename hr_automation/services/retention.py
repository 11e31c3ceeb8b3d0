"""
RetentionService -- Deletes queue jobs past their age limit.

DONE jobs go after 30 days and ERROR_* jobs after 90 (both by
``updated_at``).  PROCESSING jobs untouched for 7 days are deleted as a
safety net independent of the reclaimer.  PENDING jobs are never purged.
"""

from __future__ import annotations

from typing import Callable, Iterable

from sqlalchemy.orm import Session

from hr_kernel.db.engine import session_scope
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.logging_config import get_logger

from hr_automation.domain.policy import RetentionPolicy
from hr_automation.domain.types import QueueKind, RetentionResult
from hr_automation.services.job_store import QueueJobStore

logger = get_logger("automation.retention")


class RetentionService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        policy: RetentionPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._policy = policy or RetentionPolicy()

    def purge(self, kind: QueueKind) -> RetentionResult:
        cutoffs = self._policy.cutoffs(self._clock.now())
        with session_scope(self._session_factory) as session:
            result = QueueJobStore(session, self._clock).purge(kind, cutoffs)
        logger.info(
            "queue_retention_purged",
            extra={
                "queue": kind.value,
                "done_purged": result.done_purged,
                "error_purged": result.error_purged,
                "processing_purged": result.processing_purged,
            },
        )
        return result

    def purge_all(
        self, kinds: Iterable[QueueKind] = tuple(QueueKind),
    ) -> tuple[RetentionResult, ...]:
        return tuple(self.purge(kind) for kind in kinds)
