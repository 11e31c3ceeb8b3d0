"""
Typed exception hierarchy for the HR kernel and the automation worker.

Every error has a typed class (catch by type, not by message), a ``code``
attribute (machine-readable, stable across message rewording) and
structured data attributes that the JSON log formatter exports as
``exc_*`` fields.

The queue worker relies on this hierarchy to classify failures:

    AutomationError (base)
    |
    +-- QueueTerminalError            job ends in a named terminal status
    |   +-- JobConfigurationError     ERROR_CONFIG
    |   +-- DuplicateIdentityError    ERROR_DUPLICATE
    |   +-- JobPermissionError        ERROR_PERM
    |   +-- FatalJobError             ERROR_FATAL
    |       +-- EmployeeNotFoundError
    |       +-- MissingIdentityDataError
    |
    +-- QueueJobNotFoundError
    +-- QueueJobNotRequeueableError
    +-- UnknownQueueError
    +-- SensitiveDataError

Anything raised by a processing strategy that is NOT a QueueTerminalError is
transient: the worker retries it with linear backoff until the attempt
ceiling is reached.

Terminal status values are plain strings here so the kernel stays free of
imports from hr_automation; they match ``QueueJobStatus`` values.
"""

from typing import Any


class AutomationError(Exception):
    """
    Base exception for all automation errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "AUTOMATION_ERROR"


# =============================================================================
# Terminal job failures
# =============================================================================


class QueueTerminalError(AutomationError):
    """A classified business condition that ends a job without retry."""

    code: str = "QUEUE_TERMINAL"
    terminal_status: str = "ERROR_FATAL"


class JobConfigurationError(QueueTerminalError):
    """Target application or default role is missing or inactive."""

    code: str = "CONFIGURATION_MISSING"
    terminal_status: str = "ERROR_CONFIG"

    def __init__(self, setting: str, value: str, reason: str = "missing or inactive"):
        self.setting = setting
        self.value = value
        super().__init__(f"{setting} '{value}' is {reason}")


class DuplicateIdentityError(QueueTerminalError):
    """The resolved user account is already bound to a conflicting employee."""

    code: str = "DUPLICATE_IDENTITY"
    terminal_status: str = "ERROR_DUPLICATE"

    def __init__(self, employee_id: Any, user_id: Any, linked_employee_id: Any, reason: str):
        self.employee_id = str(employee_id)
        self.user_id = str(user_id)
        self.linked_employee_id = str(linked_employee_id)
        self.reason = reason
        super().__init__(
            f"User {user_id} is already linked to employee {linked_employee_id}: {reason}"
        )


class JobPermissionError(QueueTerminalError):
    """Authorization-class failure while processing a job."""

    code: str = "PERMISSION_DENIED"
    terminal_status: str = "ERROR_PERM"

    def __init__(self, action: str, detail: str = ""):
        self.action = action
        message = f"Not authorized to {action}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class FatalJobError(QueueTerminalError):
    """Unrecoverable job failure."""

    code: str = "FATAL_JOB_ERROR"
    terminal_status: str = "ERROR_FATAL"


class EmployeeNotFoundError(FatalJobError):
    """The job references an employee that no longer exists."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: Any):
        self.employee_id = str(employee_id)
        super().__init__(f"Employee {employee_id} not found")


class MissingIdentityDataError(FatalJobError):
    """Required personal data is absent or unreadable."""

    code: str = "MISSING_IDENTITY_DATA"

    def __init__(self, employee_id: Any, missing_fields: list[str]):
        self.employee_id = str(employee_id)
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Employee {employee_id} is missing required data: "
            f"{', '.join(missing_fields)}"
        )


# =============================================================================
# Operator and infrastructure errors
# =============================================================================


class QueueJobNotFoundError(AutomationError):
    """No job with the given id exists in the queue."""

    code: str = "QUEUE_JOB_NOT_FOUND"

    def __init__(self, queue: str, job_id: Any):
        self.queue = queue
        self.job_id = str(job_id)
        super().__init__(f"Job {job_id} not found in queue '{queue}'")


class QueueJobNotRequeueableError(AutomationError):
    """Completed jobs cannot be requeued."""

    code: str = "QUEUE_JOB_NOT_REQUEUEABLE"

    def __init__(self, queue: str, job_id: Any, status: str):
        self.queue = queue
        self.job_id = str(job_id)
        self.status = status
        super().__init__(f"Job {job_id} in queue '{queue}' is {status} and cannot be requeued")


class UnknownQueueError(AutomationError):
    """The queue name does not match any known queue kind."""

    code: str = "UNKNOWN_QUEUE"

    def __init__(self, queue: str):
        self.queue = queue
        super().__init__(f"Unknown queue '{queue}'")


class SensitiveDataError(AutomationError):
    """Encryption could not be performed."""

    code: str = "SENSITIVE_DATA_ERROR"
