"""
QueueTask protocol and QueueTaskRegistry.

Contract:
    ``QueueTask`` is the per-queue processing strategy: it discovers
    candidate employees for its queue and processes one claimed job.
    ``QueueTaskRegistry`` stores registered tasks keyed by ``QueueKind``.

Architecture:
    hr_automation/tasks.  Tasks never touch job rows; the queue worker owns
    claiming, transitions and transaction boundaries.

Failure contract:
    ``process()`` signals a classified business outcome by raising a
    ``QueueTerminalError`` subclass.  Any other exception is transient and
    retried by the worker.  Returning normally means the job is DONE.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from hr_automation.domain.types import QueueJob, QueueKind


# =============================================================================
# QueueTask Protocol
# =============================================================================


@runtime_checkable
class QueueTask(Protocol):
    """Protocol for the processing strategy of one queue.

    Contract:
        - ``kind``: the queue this task serves, unique in a registry.
        - ``description``: human-readable label for logs and ops output.
        - ``find_candidates()``: employees eligible for a new job.
        - ``process()``: does the work for one claimed job inside the
          worker's transaction.

    Non-goals:
        - Does NOT commit; the worker commits the business changes together
          with the DONE transition.
        - Does NOT retry; the worker applies the retry policy.
    """

    @property
    def kind(self) -> QueueKind: ...

    @property
    def description(self) -> str: ...

    def find_candidates(self, session: Session, limit: int) -> list[UUID]:
        """Return up to ``limit`` employee ids that need a job in this queue."""
        ...

    def process(self, job: QueueJob, session: Session, now: datetime) -> None:
        """Process one claimed job.

        Args:
            job: Post-claim snapshot (status PROCESSING).
            session: Session holding the worker's open transaction.
            now: Clock-injected timestamp for every write.

        Raises:
            QueueTerminalError: classified terminal condition.
        """
        ...


# =============================================================================
# QueueTaskRegistry
# =============================================================================


class QueueTaskRegistry:
    """Registry mapping queue kinds to their QueueTask implementation.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by kind; raises KeyError if missing.
    """

    def __init__(self) -> None:
        self._tasks: dict[QueueKind, QueueTask] = {}

    def register(self, task: QueueTask) -> None:
        """Register a queue task implementation.

        Raises:
            ValueError: If a task for the same queue is already registered.
        """
        if task.kind in self._tasks:
            raise ValueError(f"Queue '{task.kind.value}' already has a task registered")
        self._tasks[task.kind] = task

    def get(self, kind: QueueKind) -> QueueTask:
        """Retrieve the task registered for ``kind``.

        Raises:
            KeyError: If no task is registered for the queue.
        """
        try:
            return self._tasks[kind]
        except KeyError:
            raise KeyError(
                f"No task registered for queue '{kind.value}'. "
                f"Available: {sorted(k.value for k in self._tasks)}"
            ) from None

    def kinds(self) -> tuple[QueueKind, ...]:
        """Registered queue kinds, in registration order."""
        return tuple(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, kind: QueueKind) -> bool:
        return kind in self._tasks
