"""
Queue task: encryption-at-rest migration.

Encrypts the configured personal data fields of an employee and of its
benefit provisions, and refreshes the lookup hashes.  Already-encrypted
values are recognized by their marker and left untouched, so re-running the
task on a migrated employee changes nothing.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_kernel.exceptions import EmployeeNotFoundError
from hr_kernel.logging_config import get_logger
from hr_kernel.models.employee import BenefitProvision, Employee
from hr_kernel.services.sensitive_data import (
    SensitiveDataService,
    normalize_email,
    normalize_national_id,
)

from hr_config.schema import DEFAULT_EMPLOYEE_FIELDS, DEFAULT_PROVISION_FIELDS

from hr_automation.domain.types import QueueJob, QueueKind
from hr_automation.selectors.employee_selector import EmployeeSelector

logger = get_logger("automation.encrypt")


class EmployeeEncryptionTask:
    """Migrates an employee's personal data to its encrypted form."""

    def __init__(
        self,
        sensitive_data: SensitiveDataService,
        employee_fields: tuple[str, ...] = DEFAULT_EMPLOYEE_FIELDS,
        provision_fields: tuple[str, ...] = DEFAULT_PROVISION_FIELDS,
    ):
        self._sensitive = sensitive_data
        self._employee_fields = employee_fields
        self._provision_fields = provision_fields

    @property
    def kind(self) -> QueueKind:
        return QueueKind.ENCRYPT

    @property
    def description(self) -> str:
        return "Encrypt employee personal data at rest"

    def find_candidates(self, session: Session, limit: int) -> list[UUID]:
        return EmployeeSelector(session).encryption_candidates(limit)

    def process(self, job: QueueJob, session: Session, now: datetime) -> None:
        employee = session.get(Employee, job.employee_id)
        if employee is None:
            raise EmployeeNotFoundError(job.employee_id)

        version = self._sensitive.current_scheme_version()
        encrypted = self._encrypt_fields(employee, self._employee_fields)
        rehashed = self._refresh_hashes(employee)

        provisions = session.execute(
            select(BenefitProvision)
            .where(BenefitProvision.employee_id == employee.id)
            .order_by(BenefitProvision.created_at.asc())
        ).scalars().all()
        provisions_changed = 0
        for provision in provisions:
            changed = self._encrypt_fields(provision, self._provision_fields)
            if changed or self._needs_marking(provision, version):
                provision.data_encrypted = True
                provision.encryption_version = version
                provision.encrypted_at = now
                provision.updated_at = now
                provisions_changed += 1

        if encrypted or rehashed or self._needs_marking(employee, version):
            employee.data_encrypted = True
            employee.encryption_version = version
            employee.encrypted_at = now
            employee.updated_at = now

        session.flush()
        logger.info(
            "employee_encrypted",
            extra={
                "fields_encrypted": encrypted,
                "hashes_refreshed": rehashed,
                "provisions_updated": provisions_changed,
                "scheme_version": version,
            },
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _encrypt_fields(self, record: Employee | BenefitProvision, fields: tuple[str, ...]) -> int:
        count = 0
        for name in fields:
            value = getattr(record, name)
            if not value or self._sensitive.is_encrypted(value):
                continue
            setattr(record, name, self._sensitive.encrypt(value))
            count += 1
        return count

    def _refresh_hashes(self, employee: Employee) -> bool:
        changed = False
        national_id = self._sensitive.decrypt(employee.national_id)
        if national_id and national_id.strip():
            digest = self._sensitive.hash(normalize_national_id(national_id))
            if employee.national_id_hash != digest:
                employee.national_id_hash = digest
                changed = True
        email = self._sensitive.decrypt(employee.email)
        if email and email.strip():
            digest = self._sensitive.hash(normalize_email(email))
            if employee.email_hash != digest:
                employee.email_hash = digest
                changed = True
        return changed

    @staticmethod
    def _needs_marking(record: Employee | BenefitProvision, version: str) -> bool:
        return record.data_encrypted is not True or record.encryption_version != version
