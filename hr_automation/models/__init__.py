"""
hr_automation.models -- ORM models for the automation queues.

Architecture: hr_automation/models. Imports from hr_kernel.db.base only.
"""

from hr_automation.models.queue import (
    EncryptQueueJobModel,
    IdentityQueueJobModel,
    QueueJobColumns,
    job_from_row,
    queue_model,
    queue_table,
)

__all__ = [
    "EncryptQueueJobModel",
    "IdentityQueueJobModel",
    "QueueJobColumns",
    "job_from_row",
    "queue_model",
    "queue_table",
]
