"""
AutomationOrchestrator -- DI container for the employee automation worker.

Contract:
    Wires the sensitive-data service, the queue task registry, the scanner,
    reclaimer, worker, retention service, scheduler and ops reporter from one
    ``AutomationConfig``.  Single place where all automation dependencies are
    composed.

Architecture: hr_automation (top-level).  The canonical entry point for the
    worker process and the operator scripts.

Invariants enforced:
    - Every component receives the same Clock.
    - Key material is read only through ``hr_config.resolve_secret``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable

from sqlalchemy.orm import Session

from hr_config import get_active_config, resolve_secret
from hr_config.schema import AutomationConfig
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.logging_config import get_logger
from hr_kernel.services.sensitive_data import AesGcmSensitiveDataService, SensitiveDataService

from hr_automation.domain.policy import LeasePolicy, RetentionPolicy, RetryPolicy
from hr_automation.domain.types import QueueKind
from hr_automation.services.ops_reporter import OpsReporter
from hr_automation.services.reclaimer import StuckJobReclaimer
from hr_automation.services.retention import RetentionService
from hr_automation.services.scanner import CandidateScanner
from hr_automation.services.scheduler import AutomationScheduler
from hr_automation.services.worker import QueueWorker
from hr_automation.tasks.base import QueueTaskRegistry
from hr_automation.tasks.encrypt_tasks import EmployeeEncryptionTask
from hr_automation.tasks.identity_tasks import IdentityProvisioningTask

logger = get_logger("automation.orchestrator")


def sensitive_data_from_config(config: AutomationConfig) -> SensitiveDataService:
    """Build the AES-GCM service from the key environment variables."""
    settings = config.encryption
    return AesGcmSensitiveDataService(
        encryption_key=resolve_secret(settings.key_env),
        hash_key=resolve_secret(settings.hash_key_env),
        key_id=settings.key_id,
    )


def default_task_registry(
    config: AutomationConfig,
    sensitive_data: SensitiveDataService,
    clock: Clock,
) -> QueueTaskRegistry:
    """Registry with the identity task first, then the encryption task."""
    registry = QueueTaskRegistry()
    registry.register(
        IdentityProvisioningTask(
            sensitive_data,
            app_code=config.identity.app_code,
            role_code=config.identity.role_code,
            clock=clock,
        )
    )
    registry.register(
        EmployeeEncryptionTask(
            sensitive_data,
            employee_fields=config.encryption.employee_fields,
            provision_fields=config.encryption.provision_fields,
        )
    )
    return registry


class AutomationOrchestrator:
    """DI container for the automation worker.

    Contract:
        - ``from_config()`` creates a fully wired orchestrator.
        - ``scheduler`` / ``ops`` expose the two outward-facing components.

    Non-goals:
        - Does NOT start the scheduler automatically; the caller decides.
        - Does NOT own the engine; the caller passes a session factory.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: AutomationConfig,
        sensitive_data: SensitiveDataService,
        task_registry: QueueTaskRegistry,
        clock: Clock | None = None,
        worker_id: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._sensitive_data = sensitive_data
        self._task_registry = task_registry
        self._clock = clock or SystemClock()

        queues = config.queues
        lease = LeasePolicy(timeout=timedelta(minutes=queues.lease_timeout_minutes))

        self._scanner = CandidateScanner(
            session_factory, task_registry, self._clock, batch_size=queues.scan_batch_size,
        )
        self._reclaimer = StuckJobReclaimer(session_factory, self._clock, lease)
        self._worker = QueueWorker(
            session_factory,
            task_registry,
            self._clock,
            worker_id=worker_id,
            retry_policy=RetryPolicy(
                max_attempts=queues.max_attempts,
                backoff_seconds=queues.retry_backoff_seconds,
            ),
            last_error_max_length=queues.last_error_max_length,
        )
        self._retention = RetentionService(
            session_factory,
            self._clock,
            RetentionPolicy(
                done_days=config.retention.done_days,
                error_days=config.retention.error_days,
                processing_days=config.retention.processing_days,
            ),
        )
        self._scheduler = AutomationScheduler(
            session_factory,
            task_registry,
            scanner=self._scanner,
            reclaimer=self._reclaimer,
            worker=self._worker,
            retention=self._retention,
            clock=self._clock,
            batch_sizes={
                QueueKind.IDENTITY: queues.identity_batch_size,
                QueueKind.ENCRYPT: queues.encrypt_batch_size,
            },
            tick_interval_seconds=config.scheduler.tick_interval_seconds,
            backlog_interval=timedelta(minutes=config.scheduler.backlog_log_interval_minutes),
            retention_interval=timedelta(hours=config.scheduler.retention_interval_hours),
        )
        self._ops = OpsReporter(
            session_factory,
            scanner=self._scanner,
            reclaimer=self._reclaimer,
            clock=self._clock,
            settings=config.ops,
            lease=lease,
            marker_fields=config.encryption.employee_fields,
            marker_prefix=config.encryption.marker_prefix,
            scheduler=self._scheduler,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        session_factory: Callable[[], Session],
        config: AutomationConfig | None = None,
        clock: Clock | None = None,
        sensitive_data: SensitiveDataService | None = None,
        task_registry: QueueTaskRegistry | None = None,
        worker_id: str | None = None,
    ) -> AutomationOrchestrator:
        """Create a fully wired orchestrator.

        Args:
            session_factory: Callable returning a new session per unit of work.
            config: Optional configuration.  If None, ``get_active_config()``.
            clock: Optional clock for deterministic testing.
            sensitive_data: Optional service override.  If None, built from
                the key environment variables named in the configuration.
            task_registry: Optional pre-configured registry.
            worker_id: Optional lease owner id for this process.
        """
        effective_config = config or get_active_config()
        effective_clock = clock or SystemClock()
        effective_sensitive = sensitive_data or sensitive_data_from_config(effective_config)
        registry = (
            task_registry
            if task_registry is not None
            else default_task_registry(effective_config, effective_sensitive, effective_clock)
        )

        orchestrator = cls(
            session_factory=session_factory,
            config=effective_config,
            sensitive_data=effective_sensitive,
            task_registry=registry,
            clock=effective_clock,
            worker_id=worker_id,
        )
        logger.info(
            "automation_orchestrator_ready",
            extra={
                "config_id": effective_config.config_id,
                "worker_id": orchestrator.worker.worker_id,
                "queues": [kind.value for kind in registry.kinds()],
            },
        )
        return orchestrator

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> AutomationConfig:
        return self._config

    @property
    def sensitive_data(self) -> SensitiveDataService:
        return self._sensitive_data

    @property
    def task_registry(self) -> QueueTaskRegistry:
        return self._task_registry

    @property
    def scanner(self) -> CandidateScanner:
        return self._scanner

    @property
    def reclaimer(self) -> StuckJobReclaimer:
        return self._reclaimer

    @property
    def worker(self) -> QueueWorker:
        return self._worker

    @property
    def retention(self) -> RetentionService:
        return self._retention

    @property
    def scheduler(self) -> AutomationScheduler:
        return self._scheduler

    @property
    def ops(self) -> OpsReporter:
        return self._ops
