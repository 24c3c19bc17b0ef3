"""
EngineConfig schema.

Typed, frozen view of the engine's YAML configuration.  YAML is parsed
into these types by ``lifecycle_config.loader``; the engine facade reads
policy values from them and passes plain arguments down to the kernel.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_DEPENDENT_PARTITIONS: tuple[str, ...] = (
    "shippingLocations",
    "chatMessages",
    "completed",
    "cancelled",
    "cartItems",
    "measurements",
    "notifications",
    "orders",
    "return_refund",
    "toReceive",
    "toShip",
)

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///lifecycle.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryConfig:
    """Backoff for transient storage errors."""

    max_attempts: int = 5
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 1.0


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderPolicy:
    restock_on_cancel: bool = True


@dataclass(frozen=True)
class ReturnPolicy:
    restock_on_approval: bool = True


@dataclass(frozen=True)
class StockRestorationPolicy:
    """``skip`` logs and skips unusable lines; ``fail`` aborts the operation."""

    on_missing_product: str = "skip"


@dataclass(frozen=True)
class UserArchivePolicy:
    """``move`` relocates dependent rows into archives; ``snapshot`` leaves them live."""

    mode: str = "move"
    dependent_partitions: tuple[str, ...] = DEFAULT_DEPENDENT_PARTITIONS


@dataclass(frozen=True)
class RestorePolicy:
    """A Restoring mark older than ``stale_after_seconds`` may be taken over."""

    stale_after_seconds: float = 300.0


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Root configuration object."""

    config_id: str
    version: int
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    orders: OrderPolicy = field(default_factory=OrderPolicy)
    returns: ReturnPolicy = field(default_factory=ReturnPolicy)
    stock_restoration: StockRestorationPolicy = field(default_factory=StockRestorationPolicy)
    user_archive: UserArchivePolicy = field(default_factory=UserArchivePolicy)
    restore: RestorePolicy = field(default_factory=RestorePolicy)
    log_level: str = "INFO"
    checksum: str = ""
