"""Read-only selectors over queue jobs and employee records."""

from hr_automation.selectors.employee_selector import EmployeeSelector
from hr_automation.selectors.queue_selector import QueueSelector

__all__ = ["EmployeeSelector", "QueueSelector"]
