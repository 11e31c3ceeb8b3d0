"""
Module: hr_kernel.models.access
Responsibility: ORM persistence for platform login accounts and the
    access-control graph the automation worker grants: company membership,
    application membership and role assignment.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``User.email`` is unique and stored normalized (trimmed, lower-case).
    - One membership row per (user, company), per (user, app) and per
      (user, role, company, app).  Deactivated memberships are reactivated
      rather than duplicated.
    - ``Role`` rows belong to exactly one application.

Failure modes:
    - IntegrityError when two writers create the same user or membership
      concurrently.  The worker treats it as transient and retries.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase, UUIDString


class User(TrackedBase):
    """Platform login account."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    requires_password_reset: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.id}>"


class App(TrackedBase):
    """Client application users can be granted access to (e.g. timewise)."""

    __tablename__ = "apps"

    __table_args__ = (
        UniqueConstraint("code", name="uq_apps_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Role(TrackedBase):
    """Role defined within one application."""

    __tablename__ = "roles"

    __table_args__ = (
        UniqueConstraint("app_id", "code", name="uq_roles_app_code"),
    )

    app_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("apps.id"), nullable=False,
    )
    code: Mapped[str] = mapped_column(String(80), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserCompany(TrackedBase):
    """Membership of a user in an employer company."""

    __tablename__ = "user_companies"

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_user_companies"),
        Index("ix_user_companies_company", "company_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserApp(TrackedBase):
    """Membership of a user in an application."""

    __tablename__ = "user_apps"

    __table_args__ = (
        UniqueConstraint("user_id", "app_id", name="uq_user_apps"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    app_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("apps.id"), nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserRole(TrackedBase):
    """Role assignment scoped to a (company, app) pair."""

    __tablename__ = "user_roles"

    __table_args__ = (
        UniqueConstraint(
            "user_id", "role_id", "company_id", "app_id", name="uq_user_roles_scope",
        ),
        Index("ix_user_roles_user", "user_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    role_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("roles.id"), nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    app_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("apps.id"), nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
