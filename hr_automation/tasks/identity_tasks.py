"""
Queue task: identity provisioning.

Creates or links the platform login account of an active employee and
grants its baseline access: company membership, application membership and
the application's default employee role, scoped to the employee's company.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import (
    DuplicateIdentityError,
    EmployeeNotFoundError,
    JobConfigurationError,
    MissingIdentityDataError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.models.access import User
from hr_kernel.models.employee import Employee
from hr_kernel.services.access_config import (
    AccessConfigProvider,
    DatabaseAccessConfigProvider,
)
from hr_kernel.services.membership_service import MembershipService
from hr_kernel.services.sensitive_data import SensitiveDataService, normalize_national_id

from hr_automation.domain.types import QueueJob, QueueKind
from hr_automation.selectors.employee_selector import EmployeeSelector

logger = get_logger("automation.identity")


class IdentityProvisioningTask:
    """Links employees to a platform user with baseline access."""

    def __init__(
        self,
        sensitive_data: SensitiveDataService,
        app_code: str = "timewise",
        role_code: str = "EMPLOYEE_TIMEWISE",
        access_config_factory: Callable[[Session], AccessConfigProvider] | None = None,
        clock: Clock | None = None,
    ):
        self._sensitive = sensitive_data
        self._app_code = app_code
        self._role_code = role_code
        self._access_config_factory = access_config_factory or DatabaseAccessConfigProvider
        self._clock = clock or SystemClock()

    @property
    def kind(self) -> QueueKind:
        return QueueKind.IDENTITY

    @property
    def description(self) -> str:
        return "Provision platform login identities for active employees"

    def find_candidates(self, session: Session, limit: int) -> list[UUID]:
        return EmployeeSelector(session).identity_candidates(limit)

    def process(self, job: QueueJob, session: Session, now: datetime) -> None:
        employee = session.get(Employee, job.employee_id)
        if employee is None:
            raise EmployeeNotFoundError(job.employee_id)
        if not employee.is_active or employee.is_linked:
            logger.info(
                "identity_not_required",
                extra={"active": employee.is_active, "linked": employee.is_linked},
            )
            return

        email = self._read(employee.email)
        first_name = self._read(employee.first_name)
        first_surname = self._read(employee.first_surname)
        missing = [
            name
            for name, value in (
                ("email", email),
                ("first_name", first_name),
                ("first_surname", first_surname),
            )
            if value is None
        ]
        if missing:
            raise MissingIdentityDataError(employee.id, missing)

        provider = self._access_config_factory(session)
        app = provider.find_app(self._app_code)
        if app is None or not app.is_active:
            raise JobConfigurationError("application", self._app_code)
        role = provider.find_active_role(app.app_id, self._role_code)
        if role is None:
            raise JobConfigurationError("default role", self._role_code)

        memberships = MembershipService(session, self._clock)
        user, created = memberships.find_or_create_user(email, first_name, first_surname)
        if not created:
            self._check_conflicts(employee, user, memberships)

        memberships.ensure_company_membership(user.id, employee.company_id)
        memberships.ensure_app_membership(user.id, app.app_id)
        memberships.ensure_role_assignment(
            user.id, role.role_id, employee.company_id, app.app_id,
        )

        employee.user_id = user.id
        employee.updated_at = now
        session.flush()

        logger.info(
            "identity_linked",
            extra={"user_id": str(user.id), "user_created": created},
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _read(self, value: str | None) -> str | None:
        """Decrypt if needed; blank or undecryptable values count as absent."""
        plain = self._sensitive.decrypt(value)
        if plain is None or not plain.strip():
            return None
        return plain

    def _identity_hash(self, employee: Employee) -> str | None:
        if employee.national_id_hash:
            return employee.national_id_hash
        national_id = self._read(employee.national_id)
        if national_id is None:
            return None
        return self._sensitive.hash(normalize_national_id(national_id))

    def _check_conflicts(
        self, employee: Employee, user: User, memberships: MembershipService,
    ) -> None:
        own_hash = None
        for other in memberships.linked_employees(user.id, employee.id):
            if other.company_id != employee.company_id:
                raise DuplicateIdentityError(
                    employee.id, user.id, other.id,
                    "linked employee belongs to another company",
                )
            own_hash = own_hash or self._identity_hash(employee)
            other_hash = self._identity_hash(other)
            if own_hash and other_hash and own_hash != other_hash:
                raise DuplicateIdentityError(
                    employee.id, user.id, other.id,
                    "national id hashes differ",
                )
