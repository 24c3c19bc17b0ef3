"""
Concurrent callers against one LifecycleEngine.

Threads released together by a Barrier race on the same order, product
and archived user.  Expected behavior:
- Exactly one of N concurrent packs of an order succeeds; the rest see
  the order gone from ``orders``.
- N concurrent +1 stock adjustments all land (no lost update).
- Two concurrent restores of one user restore it exactly once.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.exceptions import (
    ArchiveNotFoundError,
    OrderNotFoundError,
    RestoreInProgressError,
)

pytestmark = pytest.mark.slow_locks

THREADS = 6


def _race(fn, count=THREADS):
    """Run ``fn(i)`` on ``count`` threads at once; return (results, errors)."""
    barrier = Barrier(count)

    def worker(i):
        barrier.wait()
        try:
            return fn(i), None
        except Exception as exc:  # collected and asserted on by the caller
            return None, exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        outcomes = list(pool.map(worker, range(count)))
    return [r for r, e in outcomes if e is None], [e for r, e in outcomes if e is not None]


class TestConcurrentPack:
    def test_exactly_one_pack_wins(self, lifecycle_engine, make_order, admin_actor):
        lifecycle_engine.place_order(make_order("ORD-1"))

        results, errors = _race(lambda _i: lifecycle_engine.pack_order("ORD-1", admin_actor))

        assert len(results) == 1
        assert len(errors) == THREADS - 1
        assert all(isinstance(e, OrderNotFoundError) for e in errors)
        assert list(lifecycle_engine.list_documents(partitions.TO_SHIP)) == ["ORD-1"]
        assert lifecycle_engine.list_documents(partitions.ORDERS) == {}
        assert len(lifecycle_engine.list_activity()) == 1
        assert lifecycle_engine.reconcile_orders().is_consistent

    def test_distinct_orders_all_pack(self, lifecycle_engine, make_order, admin_actor):
        for i in range(THREADS):
            lifecycle_engine.place_order(make_order(f"ORD-{i}"))

        results, errors = _race(lambda i: lifecycle_engine.pack_order(f"ORD-{i}", admin_actor))

        assert errors == []
        assert len({r["toshipID"] for r in results}) == THREADS


class TestConcurrentStock:
    def test_no_lost_updates(self, lifecycle_engine, seed, make_product):
        seed(partitions.PRODUCTS, "P1", make_product("P1", {"S": 5}))

        results, errors = _race(lambda _i: lifecycle_engine.adjust_stock("P1", "S", 1))

        assert errors == []
        product = lifecycle_engine.get_document(partitions.PRODUCTS, "P1")
        assert product["stock"]["S"] == 5 + THREADS
        assert product["totalStock"] == 5 + THREADS
        assert sorted(level.size_stock for level in results) == list(range(6, 6 + THREADS))


class TestConcurrentRestore:
    def test_user_restored_once(self, lifecycle_engine, seed, make_user, make_order, admin_actor):
        seed(partitions.USERS, "U1", make_user("U1"))
        lifecycle_engine.place_order(make_order("ORD-1"))
        lifecycle_engine.archive_user("U1", admin_actor)

        results, errors = _race(
            lambda _i: lifecycle_engine.restore_user_with_all_data("U1", admin_actor), count=2
        )

        assert results == [2]
        assert len(errors) == 1
        assert isinstance(errors[0], (RestoreInProgressError, ArchiveNotFoundError))
        assert list(lifecycle_engine.list_documents(partitions.USERS)) == ["U1"]
        assert list(lifecycle_engine.list_documents(partitions.ORDERS)) == ["ORD-1"]
        assert lifecycle_engine.reconcile_orders().is_consistent
