"""Domain models for the HR kernel."""

from hr_kernel.models.access import App, Role, User, UserApp, UserCompany, UserRole
from hr_kernel.models.employee import BenefitProvision, Employee, ProvisionStatus

__all__ = [
    "App",
    "BenefitProvision",
    "Employee",
    "ProvisionStatus",
    "Role",
    "User",
    "UserApp",
    "UserCompany",
    "UserRole",
]
