"""
Tests for hr_automation.services.scheduler.AutomationScheduler.

Step order, rate limits and failure isolation are checked with recording
stand-ins for the scanner, reclaimer, worker and retention service; one
integration test runs a full tick against the real components.
"""

import threading
import time
from datetime import timedelta

import pytest

from hr_automation.domain.types import (
    BatchRunResult,
    QueueJobStatus,
    QueueKind,
    RetentionResult,
)
from hr_automation.services.scheduler import DEFAULT_BATCH_SIZES, AutomationScheduler


class Recorder:
    """Shared call log for the stand-in components."""

    def __init__(self):
        self.calls = []
        self.fail = set()
        self.on_process = None

    def record(self, *call):
        self.calls.append(call)
        if call[:2] in self.fail:
            raise RuntimeError(f"{call[0]} failed")


class FakeReclaimer:
    def __init__(self, recorder):
        self._r = recorder

    def release(self, kind):
        self._r.record("release", kind)
        return 0

    def release_all(self):
        return {kind.value: self.release(kind) for kind in QueueKind}


class FakeScanner:
    def __init__(self, recorder):
        self._r = recorder

    def scan(self, kind):
        self._r.record("scan", kind)
        return 1

    def scan_all(self):
        return {kind.value: self.scan(kind) for kind in QueueKind}


class FakeWorker:
    def __init__(self, recorder):
        self._r = recorder

    def run_batch(self, kind, batch_size):
        self._r.record("process", kind, batch_size)
        if self._r.on_process is not None:
            self._r.on_process()
        return BatchRunResult(queue=kind)


class FakeRetention:
    def __init__(self, recorder):
        self._r = recorder

    def purge(self, kind):
        self._r.record("retention", kind)
        return RetentionResult(queue=kind)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def scheduler(session_factory, orchestrator, clock, recorder):
    return AutomationScheduler(
        session_factory,
        orchestrator.task_registry,
        scanner=FakeScanner(recorder),
        reclaimer=FakeReclaimer(recorder),
        worker=FakeWorker(recorder),
        retention=FakeRetention(recorder),
        clock=clock,
        tick_interval_seconds=0.01,
    )


def _names(recorder):
    return [call[0] for call in recorder.calls]


# =============================================================================
# Tick order
# =============================================================================


class TestTickOrder:
    def test_first_tick_runs_every_step_in_order(self, scheduler, recorder):
        result = scheduler.tick()

        assert recorder.calls == [
            ("release", QueueKind.IDENTITY),
            ("release", QueueKind.ENCRYPT),
            ("scan", QueueKind.IDENTITY),
            ("scan", QueueKind.ENCRYPT),
            ("process", QueueKind.IDENTITY, 25),
            ("process", QueueKind.ENCRYPT, 50),
            ("retention", QueueKind.IDENTITY),
            ("retention", QueueKind.ENCRYPT),
        ]
        assert result.skipped is False
        assert result.enqueued == {"identity": 1, "encrypt": 1}
        assert result.released == {"identity": 0, "encrypt": 0}
        assert [b.queue for b in result.batches] == [QueueKind.IDENTITY, QueueKind.ENCRYPT]
        assert [s.queue for s in result.backlog] == [QueueKind.IDENTITY, QueueKind.ENCRYPT]
        assert len(result.retention) == 2
        assert result.failed_steps == ()

    def test_default_batch_sizes(self):
        assert DEFAULT_BATCH_SIZES == {QueueKind.IDENTITY: 25, QueueKind.ENCRYPT: 50}

    def test_custom_batch_sizes(self, session_factory, orchestrator, clock, recorder):
        scheduler = AutomationScheduler(
            session_factory,
            orchestrator.task_registry,
            scanner=FakeScanner(recorder),
            reclaimer=FakeReclaimer(recorder),
            worker=FakeWorker(recorder),
            retention=FakeRetention(recorder),
            clock=clock,
            batch_sizes={QueueKind.ENCRYPT: 7},
        )
        scheduler.tick()
        assert ("process", QueueKind.ENCRYPT, 7) in recorder.calls
        assert ("process", QueueKind.IDENTITY, 25) in recorder.calls


# =============================================================================
# Rate-limited steps
# =============================================================================


class TestRateLimits:
    def test_backlog_and_retention_not_repeated_immediately(self, scheduler, recorder):
        scheduler.tick()
        recorder.calls.clear()

        result = scheduler.tick()

        assert result.backlog == ()
        assert result.retention == ()
        assert "retention" not in _names(recorder)
        assert _names(recorder).count("process") == 2

    def test_backlog_every_15_minutes(self, scheduler, clock):
        scheduler.tick()
        clock.advance_minutes(14)
        assert scheduler.tick().backlog == ()
        clock.advance_minutes(1)
        result = scheduler.tick()
        assert len(result.backlog) == 2
        assert result.retention == ()

    def test_retention_every_6_hours(self, scheduler, clock, recorder):
        scheduler.tick()
        clock.advance_minutes(5 * 60 + 59)
        scheduler.tick()
        assert _names(recorder).count("retention") == 2

        clock.advance_minutes(1)
        assert len(scheduler.tick().retention) == 2
        assert _names(recorder).count("retention") == 4

    def test_backlog_snapshot_content(self, scheduler, make_job, clock, captured_logs):
        make_job(QueueKind.IDENTITY, created_at=clock.now() - timedelta(minutes=42))
        make_job(QueueKind.IDENTITY, status=QueueJobStatus.ERROR_FATAL)

        identity, encrypt = scheduler.backlog_snapshot()

        assert identity.status_counts["PENDING"] == 1
        assert identity.status_counts["ERROR_FATAL"] == 1
        assert identity.status_counts["DONE"] == 0
        assert identity.oldest_pending_age_minutes == 42
        assert encrypt.oldest_pending_age_minutes is None
        events = [r for r in captured_logs() if r["message"] == "queue_backlog_snapshot"]
        assert [e["queue"] for e in events] == ["identity", "encrypt"]


# =============================================================================
# Isolation and overlap
# =============================================================================


class TestIsolation:
    def test_failed_step_does_not_stop_the_tick(self, scheduler, recorder, captured_logs):
        recorder.fail = {("scan", QueueKind.IDENTITY), ("process", QueueKind.IDENTITY)}

        result = scheduler.tick()

        assert result.failed_steps == ("scan:identity", "process:identity")
        assert result.enqueued == {"encrypt": 1}
        assert [b.queue for b in result.batches] == [QueueKind.ENCRYPT]
        assert ("retention", QueueKind.ENCRYPT) in recorder.calls
        failures = [r for r in captured_logs() if r["message"] == "scheduler_step_failed"]
        assert [f["step"] for f in failures] == ["scan:identity", "process:identity"]
        assert failures[0]["exc_type"] == "RuntimeError"

    def test_overlapping_tick_is_skipped(self, scheduler, recorder, captured_logs):
        nested = []
        recorder.on_process = lambda: nested.append(scheduler.tick())

        outer = scheduler.tick()

        assert outer.skipped is False
        assert nested and all(r.skipped for r in nested)
        assert _names(recorder).count("scan") == 2
        assert any(r["message"] == "scheduler_tick_skipped" for r in captured_logs())

    def test_concurrent_tick_from_other_thread_is_skipped(self, scheduler, recorder):
        entered = threading.Event()
        release = threading.Event()

        def _block():
            entered.set()
            release.wait(timeout=5)

        recorder.on_process = _block
        results = []
        thread = threading.Thread(target=lambda: results.append(scheduler.tick()))
        thread.start()
        assert entered.wait(timeout=5)

        recorder.on_process = None
        assert scheduler.tick().skipped is True

        release.set()
        thread.join(timeout=5)
        assert results[0].skipped is False


# =============================================================================
# On-demand actions and background loop
# =============================================================================


class TestLifecycle:
    def test_on_demand_actions(self, scheduler, recorder):
        assert scheduler.rescan_now() == {"identity": 1, "encrypt": 1}
        assert scheduler.release_stuck_now() == {"identity": 0, "encrypt": 0}

    def test_start_and_stop(self, scheduler, recorder, captured_logs):
        assert scheduler.is_running is False
        scheduler.start()
        try:
            assert scheduler.is_running is True
            deadline = time.monotonic() + 5
            while "process" not in _names(recorder) and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            scheduler.stop(timeout=5)

        assert "process" in _names(recorder)
        assert scheduler.is_running is False
        messages = [r["message"] for r in captured_logs()]
        assert "scheduler_started" in messages
        assert "scheduler_stopped" in messages

    def test_start_twice_keeps_one_thread(self, scheduler):
        scheduler.start()
        try:
            first = scheduler._thread
            scheduler.start()
            assert scheduler._thread is first
        finally:
            scheduler.stop(timeout=5)

    def test_tick_interval_exposed(self, scheduler):
        assert scheduler.tick_interval_seconds == 0.01


# =============================================================================
# Integration
# =============================================================================


class TestFullTick:
    def test_one_tick_provisions_and_encrypts(
        self, orchestrator, timewise_access, make_employee, fetch_employee, fetch_job,
    ):
        employee_id = make_employee(email="a@b.com", first_name="A", first_surname="B")

        result = orchestrator.scheduler.tick()

        assert result.failed_steps == ()
        assert result.enqueued == {"identity": 1, "encrypt": 1}
        identity_batch, encrypt_batch = result.batches
        assert identity_batch.done == 1
        assert encrypt_batch.done == 1

        employee = fetch_employee(employee_id)
        assert employee.user_id is not None
        assert employee.data_encrypted is True
        assert employee.email.startswith("enc:v1:")

    def test_second_tick_finds_nothing_new(self, orchestrator, timewise_access, make_employee):
        make_employee()
        orchestrator.scheduler.tick()
        result = orchestrator.scheduler.tick()
        assert result.enqueued == {"identity": 0, "encrypt": 0}
        assert all(batch.claimed == 0 for batch in result.batches)
