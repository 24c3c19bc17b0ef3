"""
lifecycle_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the runtime configuration through ``get_active_config()``
    (or ``load_config(path)`` for an explicit file).  No other component
    reads configuration files or environment variables.

Architecture position:
    Configuration -- sits above ``lifecycle_kernel`` and below
    ``lifecycle_services``.  The kernel never imports from here; the
    engine facade translates policies into plain kernel arguments.

Invariants enforced:
    - The returned ``EngineConfig`` is frozen and fully validated.
    - ``LIFECYCLE_DATABASE_URL`` overrides ``database.url`` when set.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ValueError`` / ``KeyError`` -- validation failures.

Audit relevance:
    Every load emits a ``LIFECYCLE_CONFIG_TRACE`` log entry carrying the
    config id, version, checksum and the policy values in force.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from lifecycle_config.loader import load_yaml_file, parse_engine_config
from lifecycle_config.schema import (
    DatabaseConfig,
    EngineConfig,
    OrderPolicy,
    RetryConfig,
    ReturnPolicy,
    RestorePolicy,
    StockRestorationPolicy,
    UserArchivePolicy,
)

_logger = logging.getLogger("lifecycle_kernel.config")

CONFIG_PATH_ENV = "LIFECYCLE_CONFIG"
DATABASE_URL_ENV = "LIFECYCLE_DATABASE_URL"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "engine.yaml"


def load_config(path: Path | str) -> EngineConfig:
    """
    Load and validate an explicit configuration file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If validation fails.
        KeyError: If a required key is missing.
    """
    path = Path(path)
    config = parse_engine_config(load_yaml_file(path))

    url_override = os.environ.get(DATABASE_URL_ENV)
    if url_override:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=url_override),
        )

    _logger.info(
        "LIFECYCLE_CONFIG_TRACE",
        extra={
            "trace_type": "LIFECYCLE_CONFIG_TRACE",
            "config_path": str(path),
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "database_url_overridden": bool(url_override),
            "restock_on_cancel": config.orders.restock_on_cancel,
            "restock_on_approval": config.returns.restock_on_approval,
            "on_missing_product": config.stock_restoration.on_missing_product,
            "user_archive_mode": config.user_archive.mode,
            "restore_stale_after_seconds": config.restore.stale_after_seconds,
        },
    )
    return config


def get_active_config() -> EngineConfig:
    """The runtime configuration: ``$LIFECYCLE_CONFIG`` or the packaged default."""
    return load_config(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


__all__ = [
    "CONFIG_PATH_ENV",
    "DATABASE_URL_ENV",
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "EngineConfig",
    "OrderPolicy",
    "RetryConfig",
    "ReturnPolicy",
    "RestorePolicy",
    "StockRestorationPolicy",
    "UserArchivePolicy",
    "get_active_config",
    "load_config",
]
