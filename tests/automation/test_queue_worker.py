"""
Tests for hr_automation.services.worker.QueueWorker and the task registry.

Scripted fake tasks drive the worker through retries, terminal failures,
rollback of partial work and lost leases.
"""

import os
import re
from datetime import timedelta

import pytest
from sqlalchemy import update

from hr_kernel.exceptions import JobConfigurationError, JobPermissionError
from hr_kernel.models import Employee

from hr_automation.domain.policy import RetryPolicy
from hr_automation.domain.types import QueueJobStatus, QueueKind
from hr_automation.models.queue import queue_table
from hr_automation.services.worker import QueueWorker, default_worker_id
from hr_automation.tasks import (
    EmployeeEncryptionTask,
    IdentityProvisioningTask,
    QueueTask,
    QueueTaskRegistry,
)

WORKER = "worker-host:42:cafe"


class ScriptedTask:
    """Queue task whose outcome per call comes from a list of exceptions.

    ``None`` in the script means success.  ``before`` runs inside the
    worker's session ahead of the outcome.
    """

    def __init__(self, kind=QueueKind.ENCRYPT, script=None, before=None):
        self._kind = kind
        self._script = list(script or [])
        self._before = before
        self.calls = []

    @property
    def kind(self):
        return self._kind

    @property
    def description(self):
        return "scripted"

    def find_candidates(self, session, limit):
        return []

    def process(self, job, session, now):
        self.calls.append((job.job_id, job.attempts, now))
        if self._before is not None:
            self._before(job, session)
        outcome = self._script.pop(0) if self._script else None
        if outcome is not None:
            raise outcome


@pytest.fixture
def make_worker(session_factory, clock):
    def _make(task, retry_policy=None):
        registry = QueueTaskRegistry()
        registry.register(task)
        return QueueWorker(
            session_factory,
            registry,
            clock,
            worker_id=WORKER,
            retry_policy=retry_policy or RetryPolicy(max_attempts=5, backoff_seconds=60),
        )

    return _make


def _steal_lease(job, session):
    """Another worker takes the lease and commits before we finish."""
    table = queue_table(job.queue)
    session.execute(
        update(table).where(table.c.id == job.job_id).values(locked_by="thief:1:dead")
    )
    session.commit()


# =============================================================================
# Success and retry
# =============================================================================


class TestSuccess:
    def test_done_clears_lease(self, make_worker, make_job, fetch_job):
        job_id = make_job(QueueKind.ENCRYPT)
        worker = make_worker(ScriptedTask())

        result = worker.run_batch(QueueKind.ENCRYPT, 10)

        assert (result.claimed, result.done) == (1, 1)
        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert job.status is QueueJobStatus.DONE
        assert job.attempts == 1
        assert job.locked_by is None and job.locked_at is None

    def test_work_commits_with_done(self, make_worker, make_employee, make_job, fetch_employee):
        employee_id = make_employee()
        make_job(QueueKind.ENCRYPT, employee_id)

        def _rename(job, session):
            session.get(Employee, job.employee_id).phone = "updated"

        make_worker(ScriptedTask(before=_rename)).run_batch(QueueKind.ENCRYPT, 10)

        assert fetch_employee(employee_id).phone == "updated"

    def test_batch_size_and_order(self, make_worker, make_job, clock):
        now = clock.now()
        third = make_job(QueueKind.ENCRYPT, created_at=now - timedelta(minutes=1))
        first = make_job(QueueKind.ENCRYPT, created_at=now - timedelta(minutes=3))
        second = make_job(QueueKind.ENCRYPT, created_at=now - timedelta(minutes=2))
        task = ScriptedTask()

        result = make_worker(task).run_batch(QueueKind.ENCRYPT, 2)

        assert result.claimed == 2
        assert [call[0] for call in task.calls] == [first, second]
        assert third not in [call[0] for call in task.calls]

    def test_process_receives_clock_time(self, make_worker, make_job, clock):
        make_job(QueueKind.ENCRYPT)
        task = ScriptedTask()
        make_worker(task).run_batch(QueueKind.ENCRYPT, 1)
        assert task.calls[0][2] == clock.now()

    def test_empty_queue(self, make_worker):
        result = make_worker(ScriptedTask()).run_batch(QueueKind.ENCRYPT, 10)
        assert result.claimed == 0
        assert result.queue is QueueKind.ENCRYPT

    def test_lifecycle_logged_with_context(self, make_worker, make_job, captured_logs):
        job_id = make_job(QueueKind.ENCRYPT)
        make_worker(ScriptedTask()).run_batch(QueueKind.ENCRYPT, 10)

        logs = captured_logs()
        claimed = next(r for r in logs if r["message"] == "queue_job_claimed")
        done = next(r for r in logs if r["message"] == "queue_job_done")
        assert claimed["worker_id"] == WORKER
        assert claimed["queue"] == "encrypt"
        assert claimed["attempts"] == 1
        assert done["job_id"] == str(job_id)


class TestRetry:
    def test_two_failures_then_success(self, make_worker, make_job, clock, fetch_job):
        job_id = make_job(QueueKind.ENCRYPT)
        worker = make_worker(
            ScriptedTask(script=[RuntimeError("db timeout"), RuntimeError("db timeout"), None])
        )

        first = worker.run_batch(QueueKind.ENCRYPT, 10)
        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert first.retried == 1
        assert job.status is QueueJobStatus.PENDING
        assert job.attempts == 1
        assert job.next_retry_at == clock.now() + timedelta(seconds=60)
        assert job.last_error == "RuntimeError: db timeout"

        # not ready until the backoff has passed
        assert worker.run_batch(QueueKind.ENCRYPT, 10).claimed == 0

        clock.advance(61)
        worker.run_batch(QueueKind.ENCRYPT, 10)
        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert job.attempts == 2
        assert job.next_retry_at == clock.now() + timedelta(seconds=120)

        clock.advance(121)
        final = worker.run_batch(QueueKind.ENCRYPT, 10)
        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert final.done == 1
        assert job.status is QueueJobStatus.DONE
        assert job.attempts == 3
        assert job.next_retry_at is None
        assert job.last_error is None

    def test_always_failing_job_becomes_fatal(self, make_worker, make_job, clock, fetch_job):
        job_id = make_job(QueueKind.ENCRYPT)
        task = ScriptedTask(script=[RuntimeError("still down")] * 10)
        worker = make_worker(task)

        for _ in range(5):
            worker.run_batch(QueueKind.ENCRYPT, 10)
            clock.advance_minutes(10)

        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert job.status is QueueJobStatus.ERROR_FATAL
        assert job.attempts == 5
        assert job.next_retry_at is None
        assert job.last_error == "RuntimeError: still down"

        assert worker.run_batch(QueueKind.ENCRYPT, 10).claimed == 0
        assert len(task.calls) == 5

    def test_exhaustion_logged(self, make_worker, make_job, clock, captured_logs):
        make_job(QueueKind.ENCRYPT, attempts=4)
        make_worker(ScriptedTask(script=[RuntimeError("x")])).run_batch(QueueKind.ENCRYPT, 1)

        (event,) = [r for r in captured_logs() if r["message"] == "queue_job_retries_exhausted"]
        assert event["status"] == "ERROR_FATAL"
        assert event["attempts"] == 5

    def test_failure_rolls_back_partial_work(
        self, make_worker, make_employee, make_job, fetch_employee,
    ):
        employee_id = make_employee(phone="original")
        make_job(QueueKind.ENCRYPT, employee_id)

        def _scribble(job, session):
            session.get(Employee, job.employee_id).phone = "half-written"
            session.flush()

        make_worker(
            ScriptedTask(script=[RuntimeError("boom")], before=_scribble)
        ).run_batch(QueueKind.ENCRYPT, 10)

        assert fetch_employee(employee_id).phone == "original"

    def test_retry_log_redacts_personal_data(self, make_worker, make_job, captured_logs, fetch_job):
        job_id = make_job(QueueKind.ENCRYPT)
        make_worker(
            ScriptedTask(script=[RuntimeError("smtp refused ana@example.com id 123456789")])
        ).run_batch(QueueKind.ENCRYPT, 10)

        (event,) = [r for r in captured_logs() if r["message"] == "queue_job_retry_scheduled"]
        assert event["level"] == "WARNING"
        assert event["error_type"] == "RuntimeError"
        assert "ana@example.com" not in event["error"]
        assert "123456789" not in event["error"]
        assert "next_retry_at" in event
        # stored error keeps the full text for operators
        assert "ana@example.com" in fetch_job(QueueKind.ENCRYPT, job_id).last_error


# =============================================================================
# Terminal failures
# =============================================================================


class TestTerminal:
    @pytest.mark.parametrize(
        "exc, status",
        [
            (JobPermissionError("insert user_roles"), QueueJobStatus.ERROR_PERM),
            (JobConfigurationError("application", "timewise"), QueueJobStatus.ERROR_CONFIG),
        ],
    )
    def test_classified_errors_skip_retry(self, make_worker, make_job, fetch_job, exc, status):
        job_id = make_job(QueueKind.ENCRYPT)

        result = make_worker(ScriptedTask(script=[exc])).run_batch(QueueKind.ENCRYPT, 10)

        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert result.terminal == 1
        assert job.status is status
        assert job.attempts == 1
        assert job.next_retry_at is None
        assert job.last_error.startswith(type(exc).__name__ + ": ")

    def test_terminal_logged_with_code(self, make_worker, make_job, captured_logs):
        make_job(QueueKind.ENCRYPT)
        make_worker(
            ScriptedTask(script=[JobPermissionError("grant role")])
        ).run_batch(QueueKind.ENCRYPT, 10)

        (event,) = [r for r in captured_logs() if r["message"] == "queue_job_terminal"]
        assert event["status"] == "ERROR_PERM"
        assert event["error_code"] == "PERMISSION_DENIED"

    def test_one_failure_does_not_stop_the_batch(self, make_worker, make_job, clock):
        make_job(QueueKind.ENCRYPT, created_at=clock.now() - timedelta(minutes=2))
        make_job(QueueKind.ENCRYPT, created_at=clock.now() - timedelta(minutes=1))

        result = make_worker(
            ScriptedTask(script=[JobPermissionError("x"), None])
        ).run_batch(QueueKind.ENCRYPT, 10)

        assert (result.claimed, result.terminal, result.done) == (2, 1, 1)


# =============================================================================
# Lease and claim races
# =============================================================================


class TestLeaseLost:
    def test_done_after_reclaim_is_not_written(self, make_worker, make_job, fetch_job):
        job_id = make_job(QueueKind.ENCRYPT)

        result = make_worker(ScriptedTask(before=_steal_lease)).run_batch(QueueKind.ENCRYPT, 10)

        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert result.lease_lost == 1
        assert result.done == 0
        assert job.status is QueueJobStatus.PROCESSING
        assert job.locked_by == "thief:1:dead"

    def test_failure_after_reclaim_is_not_written(
        self, make_worker, make_job, fetch_job, captured_logs,
    ):
        job_id = make_job(QueueKind.ENCRYPT)

        result = make_worker(
            ScriptedTask(script=[RuntimeError("late")], before=_steal_lease)
        ).run_batch(QueueKind.ENCRYPT, 10)

        job = fetch_job(QueueKind.ENCRYPT, job_id)
        assert result.lease_lost == 1
        assert job.last_error is None
        assert job.locked_by == "thief:1:dead"
        assert any(r["message"] == "queue_job_lease_lost" for r in captured_logs())

    def test_claim_lost_between_listing_and_claim(self, make_worker, make_job, clock, fetch_job):
        first = make_job(QueueKind.ENCRYPT, created_at=clock.now() - timedelta(minutes=2))
        second = make_job(QueueKind.ENCRYPT, created_at=clock.now() - timedelta(minutes=1))

        def _other_worker_claims_second(job, session):
            table = queue_table(QueueKind.ENCRYPT)
            session.execute(
                update(table)
                .where(table.c.id == second)
                .values(status="PROCESSING", locked_by="other:2:beef", locked_at=clock.now())
            )

        task = ScriptedTask(before=_other_worker_claims_second)
        result = make_worker(task).run_batch(QueueKind.ENCRYPT, 10)

        assert (result.claimed, result.claim_lost, result.done) == (1, 1, 1)
        assert [call[0] for call in task.calls] == [first]
        assert fetch_job(QueueKind.ENCRYPT, second).locked_by == "other:2:beef"


# =============================================================================
# Worker identity
# =============================================================================


class TestWorkerId:
    def test_default_format(self):
        host, pid, suffix = default_worker_id().rsplit(":", 2)
        assert host
        assert pid == str(os.getpid())
        assert re.fullmatch(r"[0-9a-f]{8}", suffix)

    def test_unique_per_instance(self):
        assert default_worker_id() != default_worker_id()

    def test_bounded_length(self):
        assert len(default_worker_id()) <= 80

    def test_worker_generates_id(self, session_factory, clock):
        worker = QueueWorker(session_factory, QueueTaskRegistry(), clock)
        assert re.search(r":[0-9a-f]{8}$", worker.worker_id)


# =============================================================================
# Registry
# =============================================================================


class TestQueueTaskRegistry:
    def test_register_and_get(self):
        registry = QueueTaskRegistry()
        task = ScriptedTask(QueueKind.IDENTITY)
        registry.register(task)
        assert registry.get(QueueKind.IDENTITY) is task
        assert QueueKind.IDENTITY in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self):
        registry = QueueTaskRegistry()
        registry.register(ScriptedTask(QueueKind.ENCRYPT))
        with pytest.raises(ValueError, match="already has a task"):
            registry.register(ScriptedTask(QueueKind.ENCRYPT))

    def test_missing_kind(self):
        with pytest.raises(KeyError):
            QueueTaskRegistry().get(QueueKind.IDENTITY)

    def test_kinds_in_registration_order(self):
        registry = QueueTaskRegistry()
        registry.register(ScriptedTask(QueueKind.ENCRYPT))
        registry.register(ScriptedTask(QueueKind.IDENTITY))
        assert registry.kinds() == (QueueKind.ENCRYPT, QueueKind.IDENTITY)

    def test_production_tasks_satisfy_protocol(self, sensitive_data):
        assert isinstance(IdentityProvisioningTask(sensitive_data), QueueTask)
        assert isinstance(EmployeeEncryptionTask(sensitive_data), QueueTask)
        assert isinstance(ScriptedTask(), QueueTask)

    def test_default_registry_order(self, orchestrator):
        assert orchestrator.task_registry.kinds() == (QueueKind.IDENTITY, QueueKind.ENCRYPT)
