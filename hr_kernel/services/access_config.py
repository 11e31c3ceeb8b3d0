"""
Module: hr_kernel.services.access_config
Responsibility: Read-only resolution of the application and default role an
    automatically provisioned user is granted.
Architecture position: Kernel > Services.  Reads App/Role rows; never writes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_kernel.models.access import App, Role


@dataclass(frozen=True)
class ResolvedApp:
    app_id: UUID
    code: str
    is_active: bool


@dataclass(frozen=True)
class ResolvedRole:
    role_id: UUID
    app_id: UUID
    code: str
    is_active: bool


@runtime_checkable
class AccessConfigProvider(Protocol):
    """Resolves an application by code and a role of that application."""

    def find_app(self, app_code: str) -> ResolvedApp | None: ...

    def find_active_role(self, app_id: UUID, role_code: str) -> ResolvedRole | None: ...


class DatabaseAccessConfigProvider:
    """``AccessConfigProvider`` backed by the apps/roles tables."""

    def __init__(self, session: Session):
        self._session = session

    def find_app(self, app_code: str) -> ResolvedApp | None:
        app = self._session.execute(
            select(App).where(App.code == app_code)
        ).scalar_one_or_none()
        if app is None:
            return None
        return ResolvedApp(app_id=app.id, code=app.code, is_active=app.is_active)

    def find_active_role(self, app_id: UUID, role_code: str) -> ResolvedRole | None:
        role = self._session.execute(
            select(Role).where(
                Role.app_id == app_id,
                Role.code == role_code,
                Role.is_active == True,  # noqa: E712
            )
        ).scalar_one_or_none()
        if role is None:
            return None
        return ResolvedRole(
            role_id=role.id, app_id=role.app_id, code=role.code, is_active=role.is_active,
        )
