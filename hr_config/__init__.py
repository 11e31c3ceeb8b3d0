"""
hr_config -- single public entrypoint for automation worker configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way runtime code obtains
    configuration and ``resolve_secret()`` the only way it reads key
    material from the environment.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- sits above ``hr_kernel`` and below ``hr_automation``.
    The kernel never imports from ``hr_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configured YAML file does not exist.
    - ``ValueError`` -- schema validation failures.

Audit relevance:
    Every successful load emits an ``automation_config_loaded`` log entry
    with the config id and checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from hr_config.loader import compute_checksum, load_yaml_file, parse_automation_config
from hr_config.schema import AutomationConfig
from hr_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "automation.yaml"
CONFIG_PATH_ENV = "HR_AUTOMATION_CONFIG"


def get_active_config(config_path: Path | None = None) -> AutomationConfig:
    """Load and validate the automation configuration.

    Resolution order: explicit ``config_path``, then the path in
    ``HR_AUTOMATION_CONFIG``, then ``hr_config/sets/automation.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If the configuration fails validation.
    """
    path = config_path
    if path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        path = Path(env_path) if env_path else _DEFAULT_CONFIG_PATH

    config = parse_automation_config(load_yaml_file(path))
    logger.info(
        "automation_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_path": str(path),
            "checksum": compute_checksum(config),
        },
    )
    return config


def resolve_secret(env_name: str) -> str | None:
    """Read a secret (encryption or hash key) from the environment."""
    value = os.environ.get(env_name)
    return value or None


__all__ = ["AutomationConfig", "get_active_config", "resolve_secret"]
