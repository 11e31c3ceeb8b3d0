"""
Module: hr_kernel.models.employee
Responsibility: ORM persistence for employee records and their dependent
    benefit-accrual provisions.  Both are owned by the surrounding CRUD
    system; the automation worker only mutates the user link, the
    encryption flag/version/timestamp and the personal data fields.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Personal data columns hold either plaintext or a marker-prefixed
      ciphertext.  ``data_encrypted`` is only set once every configured
      field is in encrypted form.
    - ``national_id_hash`` / ``email_hash`` are keyed HMAC digests of the
      normalized plaintext, usable for equality lookups without decryption.
    - Organizational attributes (company_id, employee_code, dates) are never
      touched by the worker.

Failure modes:
    - IntegrityError on a provision whose employee_id does not exist.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase, UUIDString


class ProvisionStatus(str, Enum):
    """Lifecycle of a benefit-accrual provision."""

    PENDING = "pending"
    PAID = "paid"


class Employee(TrackedBase):
    """
    Employee record of an employer company.

    Contract:
        ``user_id`` links the employee to its platform login account once
        identity provisioning has run.  ``is_active`` is owned by the CRUD
        system (terminated employees are inactive).
    """

    __tablename__ = "employees"

    __table_args__ = (
        Index("ix_employees_active_user", "is_active", "user_id"),
        Index("ix_employees_data_encrypted", "data_encrypted"),
        Index("ix_employees_company", "company_id"),
        Index("ix_employees_email_hash", "email_hash"),
        Index("ix_employees_national_id_hash", "national_id_hash"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    employee_code: Mapped[str] = mapped_column(String(45), nullable=False)

    # Personal data (plaintext or encrypted)
    national_id: Mapped[str | None] = mapped_column(String(512), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    first_surname: Mapped[str | None] = mapped_column(String(512), nullable=True)
    second_surname: Mapped[str | None] = mapped_column(String(512), nullable=True)
    email: Mapped[str | None] = mapped_column(String(512), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(512), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    base_salary: Mapped[str | None] = mapped_column(String(512), nullable=True)
    social_security_number: Mapped[str | None] = mapped_column(String(512), nullable=True)
    bank_account: Mapped[str | None] = mapped_column(String(512), nullable=True)
    accrued_vacation: Mapped[str | None] = mapped_column(String(512), nullable=True)
    accrued_severance: Mapped[str | None] = mapped_column(String(512), nullable=True)
    exit_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Lookup hashes
    national_id_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Organizational
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    exit_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Identity link and state
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Encryption-at-rest metadata
    data_encrypted: Mapped[bool | None] = mapped_column(
        Boolean, default=False, nullable=True,
    )
    encryption_version: Mapped[str | None] = mapped_column(String(10), nullable=True)
    encrypted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    @property
    def is_linked(self) -> bool:
        return self.user_id is not None

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} company={self.company_id}>"


class BenefitProvision(TrackedBase):
    """
    Year-end bonus (aguinaldo) accrual provision owned by an employee.

    ``provisioned_amount`` and ``company_record`` are personal data and are
    encrypted alongside the employee record.
    """

    __tablename__ = "employee_benefit_provisions"

    __table_args__ = (
        Index("ix_benefit_provisions_employee", "employee_id"),
        Index("ix_benefit_provisions_company", "company_id"),
        Index("ix_benefit_provisions_status", "status"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    provisioned_amount: Mapped[str | None] = mapped_column(Text, nullable=True)
    company_record: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ProvisionStatus.PENDING.value, nullable=False,
    )

    data_encrypted: Mapped[bool | None] = mapped_column(
        Boolean, default=False, nullable=True,
    )
    encryption_version: Mapped[str | None] = mapped_column(String(10), nullable=True)
    encrypted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
