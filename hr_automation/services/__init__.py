"""Queue services: job store, scanner, reclaimer, worker, scheduler, ops."""

from hr_automation.services.job_store import QueueJobStore
from hr_automation.services.ops_reporter import OpsReporter
from hr_automation.services.reclaimer import StuckJobReclaimer
from hr_automation.services.retention import RetentionService
from hr_automation.services.scanner import CandidateScanner
from hr_automation.services.scheduler import AutomationScheduler
from hr_automation.services.worker import QueueWorker

__all__ = [
    "AutomationScheduler",
    "CandidateScanner",
    "OpsReporter",
    "QueueJobStore",
    "QueueWorker",
    "RetentionService",
    "StuckJobReclaimer",
]
