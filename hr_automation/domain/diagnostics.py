"""
hr_automation.domain.diagnostics -- Operator-facing text for job rows.

Pure functions over ``QueueJob`` snapshots: error redaction and a one-line
diagnostic derived from status, lease and retry fields.
"""

from __future__ import annotations

import re
from datetime import datetime

from hr_kernel.domain.clock import as_utc

from hr_automation.domain.policy import LeasePolicy
from hr_automation.domain.types import QueueJob, QueueJobStatus

REDACTED_EMAIL = "[redacted-email]"
REDACTED_ID = "[redacted-id]"

_EMAIL = re.compile(r"[A-Z0-9._%+\-]+@[A-Z0-9.\-]+\.[A-Z]{2,}", re.IGNORECASE)
_LONG_NUMBER = re.compile(r"\b\d{8,}\b")


def redact_error(message: str | None, limit: int = 500) -> str | None:
    """Replace emails and 8+ digit numbers with placeholders, then truncate."""
    if message is None:
        return None
    redacted = _EMAIL.sub(REDACTED_EMAIL, message)
    redacted = _LONG_NUMBER.sub(REDACTED_ID, redacted)
    return redacted[:limit]


def diagnose(job: QueueJob, now: datetime, lease: LeasePolicy | None = None) -> str:
    lease = lease or LeasePolicy()
    status = job.status

    if lease.is_stuck(job, now):
        return "Stuck: lease expired or missing, released on the next reclaim"
    if status is QueueJobStatus.PROCESSING:
        return f"Processing by {job.locked_by}"
    if status is QueueJobStatus.ERROR_CONFIG:
        return "Configuration missing: check the target application and default role, then requeue"
    if status is QueueJobStatus.ERROR_DUPLICATE:
        return "Identity conflict: account already bound to another employee, reconcile then requeue"
    if status is QueueJobStatus.ERROR_PERM:
        return "Permission denied: fix the grant, then requeue"
    if status is QueueJobStatus.ERROR_FATAL:
        return "Fatal: retries exhausted or required data missing"
    if status is QueueJobStatus.PENDING:
        if job.next_retry_at is not None and as_utc(job.next_retry_at) > as_utc(now):
            return f"Waiting for retry at {as_utc(job.next_retry_at).isoformat()}"
        return "Ready to process"
    return f"Status {status.value}"
