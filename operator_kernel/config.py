"""
Configuration Loader (``operator_kernel.config``).

Responsibility
--------------
Loads the kernel's YAML configuration file and parses it into a frozen
``KernelConfig``.  The single runtime entry point is
``get_active_config()``; services receive the values they need as
constructor arguments and never read configuration themselves.

Invariants enforced
-------------------
* Every parsed configuration is a frozen dataclass.
* Unknown keys and wrongly typed values raise ``ConfigurationError``; there
  are no silent coercions.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError`` (key ``path``).
* Malformed YAML  -> ``ConfigurationError`` chained to ``yaml.YAMLError``.
* Missing ``database_url``  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from operator_kernel.exceptions import ConfigurationError
from operator_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "OPERATOR_KERNEL_CONFIG"

DEFAULT_DATABASE_URL = "sqlite://"


@dataclass(frozen=True)
class KernelConfig:
    """Runtime settings of the operator kernel."""

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    log_level: str = "INFO"
    due_soon_days: int = 7
    history_limit: int = 20
    unknown_user_label: str = "Unknown"
    currency: str = "VND"

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_FIELD_TYPES: dict[str, type] = {
    "database_url": str,
    "echo_sql": bool,
    "log_level": str,
    "due_soon_days": int,
    "history_limit": int,
    "unknown_user_label": str,
    "currency": str,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: The file is missing, unreadable YAML, or its top
            level is not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError("path", f"file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError("path", f"invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("path", f"top level of {path} must be a mapping")
    return data


def parse_config(data: dict[str, Any]) -> KernelConfig:
    """
    Build a ``KernelConfig`` from a parsed mapping.

    The mapping may nest the settings under an ``operator_kernel`` key.

    Raises:
        ConfigurationError: Unknown key, wrong value type, or a value out of
            range.
    """
    section = data.get("operator_kernel", data)
    if not isinstance(section, dict):
        raise ConfigurationError("operator_kernel", "must be a mapping")

    known = {f.name for f in fields(KernelConfig)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigurationError(unknown[0], "unknown configuration key")

    values: dict[str, Any] = {}
    for key, value in section.items():
        expected = _FIELD_TYPES[key]
        # bool is a subclass of int; reject it for integer settings
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise ConfigurationError(
                key, f"expected {expected.__name__}, got {type(value).__name__}"
            )
        values[key] = value

    config = KernelConfig(**values)
    _validate(config)
    return config


def _validate(config: KernelConfig) -> None:
    if not config.database_url:
        raise ConfigurationError("database_url", "must not be empty")
    if config.due_soon_days < 0:
        raise ConfigurationError("due_soon_days", "must be >= 0")
    if config.history_limit < 1:
        raise ConfigurationError("history_limit", "must be >= 1")
    if not isinstance(config.log_level_number, int):
        raise ConfigurationError("log_level", f"unknown level {config.log_level!r}")
    if len(config.currency) != 3 or not config.currency.isalpha():
        raise ConfigurationError("currency", "must be a 3-letter ISO 4217 code")


def load_config(path: str | Path) -> KernelConfig:
    """Load and validate a configuration file."""
    path = Path(path)
    config = parse_config(load_yaml_file(path))
    logger.info(
        "config_loaded",
        extra={"path": str(path), "checksum": compute_checksum(config.to_dict())},
    )
    return config


def get_active_config() -> KernelConfig:
    """
    The runtime configuration entry point.

    Reads the file named by ``OPERATOR_KERNEL_CONFIG``; without it the
    built-in defaults apply.
    """
    path = os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return KernelConfig()
    return load_config(path)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    SHA-256 checksum of the canonical JSON serialization of ``data``.

    Identical data always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
