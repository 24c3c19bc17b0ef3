"""
Configuration Loader (``lifecycle_config.loader``).

Responsibility
--------------
Loads the engine's YAML file and parses it into the frozen dataclasses of
``lifecycle_config.schema``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  May import kernel domain
constants for validation; the kernel never imports from here.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages.  Omitted sections take the schema defaults; present values
  are validated, never coerced silently.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  source for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id`` / ``version``  -> ``KeyError``.
* Unknown policy values or partitions  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from lifecycle_config.schema import (
    DEFAULT_DEPENDENT_PARTITIONS,
    DatabaseConfig,
    EngineConfig,
    OrderPolicy,
    RetryConfig,
    ReturnPolicy,
    RestorePolicy,
    StockRestorationPolicy,
    UserArchivePolicy,
)
from lifecycle_kernel.domain.partitions import DEPENDENT_ARCHIVES

MISSING_PRODUCT_POLICIES = frozenset({"skip", "fail"})
USER_ARCHIVE_MODES = frozenset({"move", "snapshot"})
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def _non_negative_float(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"{section}.{key} must be a non-negative number, got {value!r}")
    return float(value)


def _positive_float(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"{section}.{key} must be a positive number, got {value!r}")
    return float(value)


def _choice(section: str, key: str, value: Any, allowed: frozenset[str]) -> str:
    if value not in allowed:
        raise ValueError(
            f"{section}.{key} must be one of {sorted(allowed)}, got {value!r}"
        )
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    url = data.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ValueError(f"database.url must be a non-empty string, got {url!r}")
    return DatabaseConfig(
        url=url,
        echo=_bool("database", "echo", data.get("echo", defaults.echo)),
        pool_size=_positive_int("database", "pool_size", data.get("pool_size", defaults.pool_size)),
        max_overflow=_positive_int(
            "database", "max_overflow", data.get("max_overflow", defaults.max_overflow)
        ),
    )


def parse_retry(data: dict[str, Any]) -> RetryConfig:
    defaults = RetryConfig()
    retry = RetryConfig(
        max_attempts=_positive_int(
            "retry", "max_attempts", data.get("max_attempts", defaults.max_attempts)
        ),
        base_delay_seconds=_non_negative_float(
            "retry", "base_delay_seconds", data.get("base_delay_seconds", defaults.base_delay_seconds)
        ),
        max_delay_seconds=_non_negative_float(
            "retry", "max_delay_seconds", data.get("max_delay_seconds", defaults.max_delay_seconds)
        ),
    )
    if retry.max_delay_seconds < retry.base_delay_seconds:
        raise ValueError("retry.max_delay_seconds must not be below retry.base_delay_seconds")
    return retry


def parse_user_archive(data: dict[str, Any]) -> UserArchivePolicy:
    mode = _choice("user_archive", "mode", data.get("mode", "move"), USER_ARCHIVE_MODES)
    raw = data.get("dependent_partitions", list(DEFAULT_DEPENDENT_PARTITIONS))
    if not isinstance(raw, list):
        raise ValueError("user_archive.dependent_partitions must be a list")
    unknown = [p for p in raw if p not in DEPENDENT_ARCHIVES]
    if unknown:
        raise ValueError(
            f"user_archive.dependent_partitions has no archive partition for: {unknown}"
        )
    return UserArchivePolicy(mode=mode, dependent_partitions=tuple(dict.fromkeys(raw)))


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse the root configuration mapping.

    Raises:
        KeyError: ``config_id`` or ``version`` missing.
        ValueError: any value fails validation.
    """
    orders = _section(data, "orders")
    returns = _section(data, "returns")
    restoration = _section(data, "stock_restoration")
    restore = _section(data, "restore")
    logging_section = _section(data, "logging")

    return EngineConfig(
        config_id=str(data["config_id"]),
        version=_positive_int("root", "version", data["version"]),
        database=parse_database(_section(data, "database")),
        retry=parse_retry(_section(data, "retry")),
        orders=OrderPolicy(
            restock_on_cancel=_bool(
                "orders", "restock_on_cancel", orders.get("restock_on_cancel", True)
            ),
        ),
        returns=ReturnPolicy(
            restock_on_approval=_bool(
                "returns", "restock_on_approval", returns.get("restock_on_approval", True)
            ),
        ),
        stock_restoration=StockRestorationPolicy(
            on_missing_product=_choice(
                "stock_restoration",
                "on_missing_product",
                restoration.get("on_missing_product", "skip"),
                MISSING_PRODUCT_POLICIES,
            ),
        ),
        user_archive=parse_user_archive(_section(data, "user_archive")),
        restore=RestorePolicy(
            stale_after_seconds=_positive_float(
                "restore",
                "stale_after_seconds",
                restore.get("stale_after_seconds", RestorePolicy().stale_after_seconds),
            ),
        ),
        log_level=_choice(
            "logging", "level", str(logging_section.get("level", "INFO")).upper(), LOG_LEVELS
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
