"""Tests for NotificationService."""

import pytest

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.services.notification_service import NotificationKind


class TestNotify:
    def test_payload(self, services):
        note = services.notifications.notify(NotificationKind.SHIPPED, "U1", "ORD-1")

        assert note == {
            "notifID": "NTS-1704110400000-1",
            "userId": "U1",
            "title": "Order Shipped",
            "message": "Your order ORD-1 has been shipped.",
            "orderId": "ORD-1",
            "timestamp": "2024-01-01T12:00:00.000Z",
            "read": False,
        }
        stored = services.store.require(partitions.NOTIFICATIONS, note["notifID"])
        assert stored.user_id == "U1"

    def test_each_kind_has_its_own_counter(self, services):
        first = services.notifications.notify(NotificationKind.PACKED, "U1", "ORD-1")
        second = services.notifications.notify(NotificationKind.PACKED, "U1", "ORD-2")
        other = services.notifications.notify(NotificationKind.CANCELLED, "U1", "ORD-3")

        assert first["notifID"].endswith("-1")
        assert second["notifID"].endswith("-2")
        assert other["notifID"] == "NTX-1704110400000-1"

    @pytest.mark.parametrize("kind", list(NotificationKind))
    def test_every_kind_renders(self, services, kind):
        note = services.notifications.notify(kind, None, "ORD-9")
        assert note["title"]
        assert "{" not in note["message"]
        assert note["userId"] is None
