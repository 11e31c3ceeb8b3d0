"""
Configuration loader (``hr_config.loader``).

Loads the automation YAML file and parses it into the frozen dataclasses of
``hr_config.schema``.  Runtime code does not call this module; it goes
through ``hr_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, non-positive size, unknown encryption field,
  key id containing the ciphertext separator  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

import yaml

from hr_config.schema import (
    DEFAULT_EMPLOYEE_FIELDS,
    DEFAULT_PROVISION_FIELDS,
    AutomationConfig,
    EncryptionSettings,
    IdentitySettings,
    OpsSettings,
    QueueSettings,
    RetentionSettings,
    SchedulerSettings,
)

_SECTIONS: dict[str, type] = {
    "scheduler": SchedulerSettings,
    "queues": QueueSettings,
    "retention": RetentionSettings,
    "identity": IdentitySettings,
    "encryption": EncryptionSettings,
    "ops": OpsSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_section(name: str, cls: type, data: dict[str, Any] | None) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {unknown}")
    values = dict(data)
    for key, val in values.items():
        if isinstance(val, list):
            values[key] = tuple(val)
    return cls(**values)


def _validate(config: AutomationConfig) -> None:
    for section_name in ("scheduler", "queues", "retention", "ops"):
        section = getattr(config, section_name)
        for key, val in asdict(section).items():
            if isinstance(val, (int, float)) and not isinstance(val, bool) and val <= 0:
                raise ValueError(f"{section_name}.{key} must be positive, got {val}")

    unknown_employee = sorted(
        set(config.encryption.employee_fields) - set(DEFAULT_EMPLOYEE_FIELDS)
    )
    if unknown_employee:
        raise ValueError(f"Unknown employee encryption fields: {unknown_employee}")
    unknown_provision = sorted(
        set(config.encryption.provision_fields) - set(DEFAULT_PROVISION_FIELDS)
    )
    if unknown_provision:
        raise ValueError(f"Unknown provision encryption fields: {unknown_provision}")
    if not config.encryption.key_id or ":" in config.encryption.key_id:
        raise ValueError(
            f"encryption.key_id must be non-empty without ':', got {config.encryption.key_id!r}"
        )

    if not config.identity.app_code or not config.identity.role_code:
        raise ValueError("identity.app_code and identity.role_code are required")


def parse_automation_config(data: dict[str, Any]) -> AutomationConfig:
    """
    Parse an ``AutomationConfig`` from a dict.

    Raises:
        ValueError: on unknown sections/keys or invalid values.
    """
    unknown = sorted(set(data) - set(_SECTIONS) - {"config_id"})
    if unknown:
        raise ValueError(f"Unknown configuration sections: {unknown}")

    config = AutomationConfig(
        config_id=str(data.get("config_id", "default")),
        **{
            name: _parse_section(name, cls, data.get(name))
            for name, cls in _SECTIONS.items()
        },
    )
    _validate(config)
    return config


def compute_checksum(config: AutomationConfig) -> str:
    """Deterministic SHA-256 of the parsed configuration."""
    canonical = json.dumps(asdict(config), sort_keys=True, default=list)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
