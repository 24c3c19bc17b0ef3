"""
Tests for the Inventory Ledger.

Invariants tested:
- totalStock always equals the sum of the per-size stock map.
- Stock never goes negative; unknown sizes are rejected.
- Restoration applies +quantity per line and honours the missing-product
  policy (skip with a warning, or fail the whole operation).
"""

import pytest

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.dtos import RestorationOutcome
from lifecycle_kernel.exceptions import (
    InvalidStockError,
    MissingProductReferenceError,
    ProductNotFoundError,
    ValidationError,
)
from lifecycle_kernel.services.inventory_ledger import MissingProductPolicy, total_of


@pytest.fixture
def product(services, make_product):
    services.store.insert(partitions.PRODUCTS, "P1", make_product("P1", {"S": 5, "M": 2}))
    return "P1"


def _stored(services, product_id):
    return services.store.require(partitions.PRODUCTS, product_id).payload


class TestAdjustStock:
    def test_increment_recomputes_total(self, services, product):
        level = services.ledger.adjust_stock(product, "S", 3)

        assert level.size_stock == 8
        assert level.total_stock == 10
        stored = _stored(services, product)
        assert stored["stock"]["S"] == 8
        assert stored["totalStock"] == 10

    def test_decrement(self, services, product):
        level = services.ledger.adjust_stock(product, "M", -2)
        assert level.size_stock == 0
        assert level.total_stock == 5

    def test_negative_result_rejected(self, services, product):
        with pytest.raises(InvalidStockError) as exc_info:
            services.ledger.adjust_stock(product, "M", -3)

        assert exc_info.value.size == "M"
        assert _stored(services, product)["stock"]["M"] == 2

    @pytest.mark.parametrize("size", ["XS", "s", "", "XXL"])
    def test_unknown_size_rejected(self, services, product, size):
        with pytest.raises(InvalidStockError):
            services.ledger.adjust_stock(product, size, 1)

    @pytest.mark.parametrize("delta", [1.5, "2", True, None])
    def test_non_integer_delta_rejected(self, services, product, delta):
        with pytest.raises(ValidationError):
            services.ledger.adjust_stock(product, "S", delta)

    def test_missing_product(self, services):
        with pytest.raises(ProductNotFoundError) as exc_info:
            services.ledger.adjust_stock("NOPE", "S", 1)
        assert exc_info.value.product_id == "NOPE"

    def test_zero_delta_is_a_noop(self, services, product):
        before = services.store.require(partitions.PRODUCTS, product).version

        level = services.ledger.adjust_stock(product, "S", 0)

        assert level.size_stock == 5
        assert level.total_stock == 7
        assert services.store.require(partitions.PRODUCTS, product).version == before

    def test_fills_missing_size_keys(self, services):
        services.store.insert(
            partitions.PRODUCTS, "P2", {"productId": "P2", "stock": {"S": 1}, "totalStock": 99}
        )
        level = services.ledger.adjust_stock("P2", "XL", 4)

        assert level.total_stock == 5
        assert _stored(services, "P2")["totalStock"] == 5

    def test_logs_adjustment(self, services, product, captured_logs):
        services.ledger.adjust_stock(product, "S", 1)

        records = [r for r in captured_logs() if r["message"] == "stock_adjusted"]
        assert len(records) == 1
        assert records[0]["product_id"] == "P1"
        assert records[0]["total_stock"] == 8


class TestTotalOf:
    def test_ignores_garbage_values(self):
        assert total_of({"S": 2, "M": None, "L": 3}) == 5


class TestRestoreLineItems:
    def test_restores_each_line(self, services, product, make_product):
        services.store.insert(partitions.PRODUCTS, "P2", make_product("P2", {"L": 1}))

        report = services.ledger.restore_line_items(
            "ORD-1",
            [
                {"productId": "P1", "size": "S", "quantity": 3},
                {"productId": "P2", "size": "L", "quantity": 2},
            ],
        )

        assert report.restored_quantity == 5
        assert _stored(services, "P1")["stock"]["S"] == 8
        assert _stored(services, "P2")["totalStock"] == 3

    def test_skip_policy_skips_bad_lines(self, services, product, captured_logs):
        report = services.ledger.restore_line_items(
            "ORD-1",
            [
                {"productId": "GONE", "size": "S", "quantity": 1},
                {"size": "S", "quantity": 1},
                {"productId": "P1", "size": "S", "quantity": 2},
            ],
            MissingProductPolicy.SKIP,
        )

        assert [l.outcome for l in report.lines] == [
            RestorationOutcome.SKIPPED,
            RestorationOutcome.SKIPPED,
            RestorationOutcome.RESTORED,
        ]
        assert report.skipped[0].product_id == "GONE"
        assert _stored(services, "P1")["stock"]["S"] == 7
        warnings = [r for r in captured_logs() if r["message"] == "stock_restore_line_skipped"]
        assert len(warnings) == 2

    def test_fail_policy_raises(self, services, product):
        with pytest.raises(MissingProductReferenceError) as exc_info:
            services.ledger.restore_line_items(
                "ORD-1",
                [{"productId": "GONE", "size": "S", "quantity": 1}],
                "fail",
            )
        assert exc_info.value.order_id == "ORD-1"
        assert exc_info.value.product_id == "GONE"

    def test_empty_items(self, services):
        report = services.ledger.restore_line_items("ORD-1", None)
        assert report.lines == ()
