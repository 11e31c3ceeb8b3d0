"""
Configuration schema (``hr_config.schema``).

Frozen dataclasses describing the automation worker configuration.  Every
field has the production default, so an empty YAML document yields a valid
configuration.  Instances are produced by ``hr_config.loader`` and handed
out by ``hr_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_EMPLOYEE_FIELDS: tuple[str, ...] = (
    "first_name",
    "first_surname",
    "second_surname",
    "national_id",
    "email",
    "phone",
    "address",
    "base_salary",
    "social_security_number",
    "bank_account",
    "accrued_vacation",
    "accrued_severance",
    "exit_reason",
)

DEFAULT_PROVISION_FIELDS: tuple[str, ...] = (
    "provisioned_amount",
    "company_record",
)


@dataclass(frozen=True)
class SchedulerSettings:
    tick_interval_seconds: float = 5.0
    backlog_log_interval_minutes: int = 15
    retention_interval_hours: int = 6


@dataclass(frozen=True)
class QueueSettings:
    """Batch sizes, lease and retry policy shared by both queues."""

    scan_batch_size: int = 200
    identity_batch_size: int = 25
    encrypt_batch_size: int = 50
    lease_timeout_minutes: int = 10
    max_attempts: int = 5
    retry_backoff_seconds: int = 60
    last_error_max_length: int = 500


@dataclass(frozen=True)
class RetentionSettings:
    done_days: int = 30
    error_days: int = 90
    processing_days: int = 7


@dataclass(frozen=True)
class IdentitySettings:
    app_code: str = "timewise"
    role_code: str = "EMPLOYEE_TIMEWISE"


@dataclass(frozen=True)
class EncryptionSettings:
    """Which fields are encrypted and where the keys come from.

    ``key_env`` / ``hash_key_env`` name environment variables; key material
    never appears in YAML.
    """

    employee_fields: tuple[str, ...] = DEFAULT_EMPLOYEE_FIELDS
    provision_fields: tuple[str, ...] = DEFAULT_PROVISION_FIELDS
    marker_prefix: str = "enc:v"
    key_env: str = "EMPLOYEE_DATA_ENCRYPTION_KEY"
    hash_key_env: str = "EMPLOYEE_DATA_HASH_KEY"
    key_id: str = "default"


@dataclass(frozen=True)
class OpsSettings:
    default_page_size: int = 25
    max_page_size: int = 200
    max_page_size_with_done: int = 100


@dataclass(frozen=True)
class AutomationConfig:
    """Root configuration object."""

    config_id: str = "default"
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    queues: QueueSettings = field(default_factory=QueueSettings)
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    identity: IdentitySettings = field(default_factory=IdentitySettings)
    encryption: EncryptionSettings = field(default_factory=EncryptionSettings)
    ops: OpsSettings = field(default_factory=OpsSettings)
