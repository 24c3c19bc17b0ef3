"""
Retry helpers for transient storage failures.

Responsibility:
    Re-runs a whole unit of work (one transaction) when it failed for a
    reason that a fresh attempt can cure: deadlocks, lock timeouts,
    SQLite ``database is locked``, and lost optimistic-lock races.

Architecture position:
    Kernel > Utils.  The engine facade wraps each top-level operation; the
    kernel services never retry themselves.

Invariants enforced:
    - Business-rule errors (NotFound, Validation, Conflict other than
      OptimisticLockError, Authorization) are never retried.
    - The delay grows exponentially and is capped at ``max_delay_seconds``.

Failure modes:
    - The last transient error is re-raised once ``max_attempts`` is spent.
"""

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from lifecycle_kernel.exceptions import OptimisticLockError
from lifecycle_kernel.logging_config import get_logger

logger = get_logger("utils.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters."""

    max_attempts: int = 5
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


def is_transient_error(exc: BaseException) -> bool:
    """True when a fresh transaction may succeed where this one failed."""
    return isinstance(exc, (OperationalError, OptimisticLockError, StaleDataError))


def run_with_retry(
    operation: str,
    work: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``work`` until it returns or raises a non-transient error.

    ``work`` must open and close its own transaction so each attempt starts
    from committed state.
    """
    attempt = 1
    while True:
        try:
            return work()
        except Exception as exc:
            if not is_transient_error(exc) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "operation_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "delay_seconds": delay,
                    "error_type": type(exc).__name__,
                },
            )
            sleep(delay)
            attempt += 1
