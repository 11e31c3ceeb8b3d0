"""
hr_automation -- Employee data automation worker.

Two durable, retryable, crash-recoverable job queues driven by one
periodic scheduler:

    identity  -- provision a platform login account for employees without one
    encrypt   -- migrate employee personal data to encrypted-at-rest form

Architecture:
    hr_automation/ is a top-level package.  Nothing in hr_kernel/ or
    hr_config/ imports from it.

Invariants:
    - At most one job row per (queue, employee) via a unique dedupe key
    - Claiming is one atomic conditional UPDATE (single winner)
    - Lease fields are set iff status is PROCESSING
    - attempts increments exactly once per claim and never decreases
    - Terminal jobs only return to PENDING by operator requeue
    - All timestamps come from the injected Clock
"""
