"""
Module: hr_kernel.services.membership_service
Responsibility: Idempotent find-or-create / find-or-reactivate operations on
    users and their company, application and role memberships.
Architecture position: Kernel > Services.  Flushes but never commits; the
    caller owns the transaction.

Invariants enforced:
    - At most one row per membership scope (backed by unique constraints).
    - An inactive membership is reactivated in place, never duplicated.
    - Repeating any ``ensure_*`` call is a no-op once the membership is active.

Failure modes:
    - IntegrityError from a concurrent writer creating the same row between
      the check and the insert.  Propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.logging_config import get_logger
from hr_kernel.models.access import User, UserApp, UserCompany, UserRole
from hr_kernel.models.employee import Employee
from hr_kernel.services.sensitive_data import normalize_email

logger = get_logger("services.membership")


@dataclass(frozen=True)
class MembershipChange:
    """Outcome of an ``ensure_*`` call."""

    membership_id: UUID
    created: bool = False
    reactivated: bool = False

    @property
    def changed(self) -> bool:
        return self.created or self.reactivated


class MembershipService:
    """Employee/User/Membership store with idempotent write semantics."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def find_user_by_email(self, email: str) -> User | None:
        return self._session.execute(
            select(User).where(User.email == normalize_email(email))
        ).scalar_one_or_none()

    def create_user(self, email: str, first_name: str, last_name: str) -> User:
        now = self._clock.now()
        user = User(
            email=normalize_email(email),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            is_active=True,
            requires_password_reset=True,
            created_at=now,
            updated_at=now,
        )
        self._session.add(user)
        self._session.flush()
        logger.info("user_created", extra={"user_id": str(user.id)})
        return user

    def find_or_create_user(
        self, email: str, first_name: str, last_name: str,
    ) -> tuple[User, bool]:
        """Return (user, created)."""
        existing = self.find_user_by_email(email)
        if existing is not None:
            return existing, False
        return self.create_user(email, first_name, last_name), True

    def linked_employees(self, user_id: UUID, exclude_employee_id: UUID) -> list[Employee]:
        """Other employee records already linked to ``user_id``."""
        return list(
            self._session.execute(
                select(Employee)
                .where(Employee.user_id == user_id, Employee.id != exclude_employee_id)
                .order_by(Employee.created_at.desc())
            ).scalars()
        )

    # -------------------------------------------------------------------------
    # Memberships
    # -------------------------------------------------------------------------

    def ensure_company_membership(self, user_id: UUID, company_id: UUID) -> MembershipChange:
        row = self._session.execute(
            select(UserCompany).where(
                UserCompany.user_id == user_id,
                UserCompany.company_id == company_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return self._create(UserCompany(user_id=user_id, company_id=company_id), "company")
        return self._reactivate(row, "company")

    def ensure_app_membership(self, user_id: UUID, app_id: UUID) -> MembershipChange:
        row = self._session.execute(
            select(UserApp).where(
                UserApp.user_id == user_id,
                UserApp.app_id == app_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return self._create(UserApp(user_id=user_id, app_id=app_id), "app")
        return self._reactivate(row, "app")

    def ensure_role_assignment(
        self, user_id: UUID, role_id: UUID, company_id: UUID, app_id: UUID,
    ) -> MembershipChange:
        row = self._session.execute(
            select(UserRole).where(
                UserRole.user_id == user_id,
                UserRole.role_id == role_id,
                UserRole.company_id == company_id,
                UserRole.app_id == app_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return self._create(
                UserRole(user_id=user_id, role_id=role_id, company_id=company_id, app_id=app_id),
                "role",
            )
        return self._reactivate(row, "role")

    def _create(self, row: UserCompany | UserApp | UserRole, scope: str) -> MembershipChange:
        now = self._clock.now()
        row.is_active = True
        row.created_at = now
        row.updated_at = now
        self._session.add(row)
        self._session.flush()
        logger.info("membership_created", extra={"scope": scope, "membership_id": str(row.id)})
        return MembershipChange(membership_id=row.id, created=True)

    def _reactivate(self, row: UserCompany | UserApp | UserRole, scope: str) -> MembershipChange:
        if row.is_active:
            return MembershipChange(membership_id=row.id)
        row.is_active = True
        row.updated_at = self._clock.now()
        self._session.flush()
        logger.info(
            "membership_reactivated", extra={"scope": scope, "membership_id": str(row.id)},
        )
        return MembershipChange(membership_id=row.id, reactivated=True)
