"""Utility functions for the lifecycle kernel."""

from lifecycle_kernel.utils.keyed_lock import KeyedLock
from lifecycle_kernel.utils.retry import RetryPolicy, is_transient_error, run_with_retry

__all__ = [
    "KeyedLock",
    "RetryPolicy",
    "is_transient_error",
    "run_with_retry",
]
