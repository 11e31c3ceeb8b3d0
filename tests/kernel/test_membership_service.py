"""
Tests for hr_kernel.services.membership_service.

Validates find-or-create users and find-or-reactivate memberships.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from hr_kernel.models import User, UserApp, UserCompany, UserRole
from hr_kernel.services.membership_service import MembershipService

@pytest.fixture
def service(db_session, clock):
    return MembershipService(db_session, clock)


def _count(session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


class TestUsers:
    def test_create_user_normalizes_email(self, service):
        user = service.create_user("  A@B.com ", "A", "B")
        assert user.email == "a@b.com"
        assert user.is_active is True
        assert user.requires_password_reset is True

    def test_find_or_create_creates_once(self, service, db_session):
        first, created = service.find_or_create_user("a@b.com", "A", "B")
        second, created_again = service.find_or_create_user("A@B.COM", "A", "B")

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert _count(db_session, User) == 1

    def test_find_user_by_email_missing(self, service):
        assert service.find_user_by_email("nobody@example.com") is None

    def test_timestamps_from_clock(self, service, clock):
        user = service.create_user("t@example.com", "T", "U")
        assert user.created_at == clock.now()

    def test_linked_employees_excludes_self(self, service, make_employee, db_session):
        user = service.create_user("l@example.com", "L", "M")
        db_session.commit()
        mine = make_employee(user_id=user.id)
        other = make_employee(user_id=user.id)

        linked = service.linked_employees(user.id, mine)
        assert [e.id for e in linked] == [other]


class TestMemberships:
    def test_company_membership_idempotent(self, service, db_session, company_e):
        user = service.create_user("c@example.com", "C", "D")

        first = service.ensure_company_membership(user.id, company_e)
        second = service.ensure_company_membership(user.id, company_e)

        assert first.created and first.changed
        assert not second.changed
        assert first.membership_id == second.membership_id
        assert _count(db_session, UserCompany) == 1

    def test_inactive_membership_reactivated(self, service, db_session):
        user = service.create_user("r@example.com", "R", "S")
        change = service.ensure_app_membership(user.id, uuid4())
        row = db_session.get(UserApp, change.membership_id)
        row.is_active = False
        db_session.flush()

        again = service.ensure_app_membership(user.id, row.app_id)

        assert again.reactivated
        assert not again.created
        assert db_session.get(UserApp, change.membership_id).is_active is True
        assert _count(db_session, UserApp) == 1

    def test_role_assignment_scoped_per_company(self, service, db_session, company_e):
        user = service.create_user("s@example.com", "S", "T")
        role_id, app_id = uuid4(), uuid4()

        service.ensure_role_assignment(user.id, role_id, company_e, app_id)
        service.ensure_role_assignment(user.id, role_id, uuid4(), app_id)
        service.ensure_role_assignment(user.id, role_id, company_e, app_id)

        assert _count(db_session, UserRole) == 2

    def test_membership_logs_creation(self, service, captured_logs, company_e):
        user = service.create_user("log@example.com", "L", "G")
        service.ensure_company_membership(user.id, company_e)

        messages = [r["message"] for r in captured_logs()]
        assert "user_created" in messages
        assert "membership_created" in messages
