"""
Pytest fixtures for the HR automation test suite.

Provides:
- Structured logging capture
- In-memory SQLite engine with all kernel and queue tables
- Deterministic clock, sensitive-data service and seed helpers

Unit tests run on in-memory SQLite through a StaticPool, so every session
shares one connection: seed data must be committed before a service opens
its own session.  Tests that need real concurrent connections build a file
database under tmp_path (see tests/concurrency).
"""

import itertools
import json
import logging
from datetime import datetime, timedelta
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import hr_automation.models  # noqa: F401  (registers queue tables)
import hr_kernel.models  # noqa: F401
from hr_config.schema import AutomationConfig
from hr_kernel.db.base import Base
from hr_kernel.domain.clock import DeterministicClock
from hr_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from hr_kernel.models import App, BenefitProvision, Employee, Role
from hr_kernel.services.sensitive_data import AesGcmSensitiveDataService

from hr_automation.domain.types import QueueJob, QueueJobStatus, QueueKind
from hr_automation.models.queue import queue_model
from hr_automation.orchestrator import AutomationOrchestrator
from hr_automation.services.job_store import QueueJobStore

TEST_ENCRYPTION_KEY = "7f" * 32
TEST_HASH_KEY = "hash-key-for-tests"
TEST_WORKER_ID = "test-host:1:worker"
COMPANY_E = UUID("00000000-0000-0000-0000-00000000000e")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture hr_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, worker):
            worker.run_batch(...)
            logs = captured_logs()
            assert any(r["message"] == "queue_job_done" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("hr_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    # Naive datetimes for SQLite compatibility (SQLite strips tzinfo)
    return DeterministicClock(fixed_time=datetime(2026, 2, 1, 12, 0, 0))


@pytest.fixture
def sensitive_data():
    return AesGcmSensitiveDataService(TEST_ENCRYPTION_KEY, hash_key=TEST_HASH_KEY)


@pytest.fixture
def company_e():
    return COMPANY_E


@pytest.fixture
def config():
    return AutomationConfig(config_id="test")


@pytest.fixture
def orchestrator(session_factory, config, clock, sensitive_data):
    return AutomationOrchestrator.from_config(
        session_factory,
        config=config,
        clock=clock,
        sensitive_data=sensitive_data,
        worker_id=TEST_WORKER_ID,
    )


# =============================================================================
# Seed helpers
# =============================================================================


@pytest.fixture
def timewise_access(session_factory, clock):
    """Active 'timewise' app with an active EMPLOYEE_TIMEWISE role."""
    now = clock.now()
    with session_factory() as session:
        app = App(code="timewise", name="TimeWise", is_active=True,
                  created_at=now, updated_at=now)
        session.add(app)
        session.flush()
        role = Role(app_id=app.id, code="EMPLOYEE_TIMEWISE", name="Employee",
                    is_active=True, created_at=now, updated_at=now)
        session.add(role)
        session.commit()
        return app.id, role.id


@pytest.fixture
def make_employee(session_factory, clock):
    """Factory inserting a committed employee; returns its id.

    Employees are created one second apart so candidate order is stable.
    """
    sequence = itertools.count()

    def _make(**overrides) -> UUID:
        n = next(sequence)
        created = clock.now() - timedelta(hours=1) + timedelta(seconds=n)
        values = dict(
            company_id=COMPANY_E,
            employee_code=f"EMP-{n:04d}",
            first_name="A",
            first_surname="B",
            email=f"employee{n}@example.com",
            national_id=f"1{n:08d}",
            is_active=True,
            user_id=None,
            data_encrypted=False,
            created_at=created,
            updated_at=created,
        )
        values.update(overrides)
        with session_factory() as session:
            employee = Employee(**values)
            session.add(employee)
            session.commit()
            return employee.id

    return _make


@pytest.fixture
def make_provision(session_factory, clock):
    def _make(employee_id: UUID, **overrides) -> UUID:
        now = clock.now()
        values = dict(
            employee_id=employee_id,
            company_id=COMPANY_E,
            provisioned_amount="125000.00",
            company_record="REC-1",
            created_at=now,
            updated_at=now,
        )
        values.update(overrides)
        with session_factory() as session:
            provision = BenefitProvision(**values)
            session.add(provision)
            session.commit()
            return provision.id

    return _make


@pytest.fixture
def make_job(session_factory, clock):
    """Factory inserting a committed queue job row in any state."""

    def _make(
        queue: QueueKind,
        employee_id: UUID | None = None,
        status: QueueJobStatus = QueueJobStatus.PENDING,
        **overrides,
    ) -> UUID:
        employee_id = employee_id or uuid4()
        now = clock.now()
        values = dict(
            employee_id=employee_id,
            dedupe_key=f"{queue.value}:{employee_id}",
            status=status.value,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        if status is QueueJobStatus.PROCESSING:
            values.update(locked_by="other-worker", locked_at=now)
        values.update(overrides)
        with session_factory() as session:
            row = queue_model(queue)(**values)
            session.add(row)
            session.commit()
            return row.id

    return _make


@pytest.fixture
def fetch_job(session_factory, clock):
    def _fetch(queue: QueueKind, job_id: UUID) -> QueueJob | None:
        with session_factory() as session:
            return QueueJobStore(session, clock).get(queue, job_id)

    return _fetch


@pytest.fixture
def fetch_employee(session_factory):
    def _fetch(employee_id: UUID) -> Employee | None:
        with session_factory() as session:
            return session.get(Employee, employee_id)

    return _fetch
