"""Tests for the frozen value objects in ``lifecycle_kernel.domain.dtos``."""

import pytest

from lifecycle_kernel.domain.dtos import (
    Actor,
    BulkItemResult,
    BulkResult,
    LineItem,
    RestorationLine,
    RestorationOutcome,
    RestorationReport,
)
from lifecycle_kernel.exceptions import InvalidLineItemError


class TestActor:
    @pytest.mark.parametrize("role", ["Admin", "admin", "Super Admin", " superadmin "])
    def test_admin_roles(self, role):
        assert Actor("a@x", role).is_admin

    @pytest.mark.parametrize("role", ["Seller", "Customer", "System", ""])
    def test_non_admin_roles(self, role):
        assert not Actor("a@x", role).is_admin


class TestLineItem:
    def test_parses_full_line(self):
        item = LineItem.from_payload(
            {"productId": "P1", "size": "M", "quantity": 2, "price": 50, "name": "Tee"}
        )
        assert item == LineItem("P1", "M", 2, 50, "Tee")

    def test_whole_float_quantity_accepted(self):
        assert LineItem.from_payload({"productId": "P1", "size": "S", "quantity": 3.0}).quantity == 3

    @pytest.mark.parametrize(
        "raw, reason",
        [
            ("P1", "not an object"),
            ({"size": "S", "quantity": 1}, "missing productId"),
            ({"productId": "  ", "size": "S", "quantity": 1}, "missing productId"),
            ({"productId": "P1", "quantity": 1}, "missing size"),
            ({"productId": "P1", "size": "S"}, "whole number"),
            ({"productId": "P1", "size": "S", "quantity": "2"}, "whole number"),
            ({"productId": "P1", "size": "S", "quantity": 1.5}, "whole number"),
            ({"productId": "P1", "size": "S", "quantity": True}, "not a number"),
            ({"productId": "P1", "size": "S", "quantity": 0}, "positive"),
            ({"productId": "P1", "size": "S", "quantity": -4}, "positive"),
        ],
    )
    def test_malformed_lines(self, raw, reason):
        with pytest.raises(InvalidLineItemError, match=reason):
            LineItem.from_payload(raw)

    def test_matches_by_product_and_size(self):
        item = LineItem("P1", "S", 1)
        assert item.matches({"productId": "P1", "size": "S", "quantity": 9})
        assert not item.matches({"productId": "P1", "size": "M"})
        assert not item.matches(None)


class TestReports:
    def test_restoration_report_partitions_lines(self):
        report = RestorationReport(
            order_id="ORD-1",
            lines=(
                RestorationLine(0, RestorationOutcome.RESTORED, "P1", "S", 3),
                RestorationLine(1, RestorationOutcome.SKIPPED, "P9", reason="missing"),
                RestorationLine(2, RestorationOutcome.RESTORED, "P2", "M", 2),
            ),
        )
        assert [l.index for l in report.restored] == [0, 2]
        assert [l.index for l in report.skipped] == [1]
        assert report.restored_quantity == 5

    def test_bulk_result(self):
        result = BulkResult(
            operation="pack_orders_bulk",
            outcomes=(
                BulkItemResult("A", True),
                BulkItemResult("B", False, error_code="ORDER_NOT_FOUND"),
            ),
        )
        assert len(result) == 2
        assert not result.all_succeeded
        assert [o.item_id for o in result.failed] == ["B"]
        assert [o.item_id for o in result] == ["A", "B"]

    def test_empty_bulk_result(self):
        result = BulkResult(operation="pack_orders_bulk")
        assert len(result) == 0
        assert result.all_succeeded
        assert list(result) == []
