"""Tests for transient-error retry (``lifecycle_kernel.utils.retry``)."""

import pytest
from sqlalchemy.exc import OperationalError

from lifecycle_kernel.exceptions import (
    DuplicateOrderError,
    OptimisticLockError,
    OrderNotFoundError,
)
from lifecycle_kernel.utils.retry import RetryPolicy, is_transient_error, run_with_retry


def _operational_error():
    return OperationalError("UPDATE documents", {}, Exception("database is locked"))


class TestRetryPolicy:
    def test_exponential_and_capped(self):
        policy = RetryPolicy(max_attempts=6, base_delay_seconds=0.1, max_delay_seconds=0.5)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == pytest.approx([0.1, 0.2, 0.4, 0.5])


class TestIsTransient:
    def test_storage_errors_are_transient(self):
        assert is_transient_error(_operational_error())
        assert is_transient_error(OptimisticLockError("Document", "x"))

    def test_business_errors_are_not(self):
        assert not is_transient_error(OrderNotFoundError("ORD-1"))
        assert not is_transient_error(DuplicateOrderError("ORD-1", "orders"))
        assert not is_transient_error(ValueError("x"))


class TestRunWithRetry:
    def test_returns_after_transient_failures(self, captured_logs):
        calls = []
        sleeps = []

        def work():
            calls.append(1)
            if len(calls) < 3:
                raise OptimisticLockError("Document", "products/P1")
            return "done"

        result = run_with_retry(
            "adjust_stock", work, RetryPolicy(max_attempts=5), sleep=sleeps.append
        )

        assert result == "done"
        assert len(calls) == 3
        assert len(sleeps) == 2
        retries = [r for r in captured_logs() if r["message"] == "operation_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]

    def test_gives_up_after_max_attempts(self):
        calls = []

        def work():
            calls.append(1)
            raise _operational_error()

        with pytest.raises(OperationalError):
            run_with_retry("pack_order", work, RetryPolicy(max_attempts=3), sleep=lambda s: None)
        assert len(calls) == 3

    def test_business_error_not_retried(self):
        calls = []

        def work():
            calls.append(1)
            raise OrderNotFoundError("ORD-1", "orders")

        with pytest.raises(OrderNotFoundError):
            run_with_retry("pack_order", work, RetryPolicy(max_attempts=5), sleep=lambda s: None)
        assert len(calls) == 1
