"""Per-queue processing strategies and their registry."""

from hr_automation.tasks.base import QueueTask, QueueTaskRegistry
from hr_automation.tasks.encrypt_tasks import EmployeeEncryptionTask
from hr_automation.tasks.identity_tasks import IdentityProvisioningTask

__all__ = [
    "EmployeeEncryptionTask",
    "IdentityProvisioningTask",
    "QueueTask",
    "QueueTaskRegistry",
]
