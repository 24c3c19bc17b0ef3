"""
Tests for ArchivalService.

Invariants tested:
- An archived entity is gone from its live partition and present, with
  provenance, in exactly one archive partition.
- Admin archives carry a unique R-XXXXXX token and the admin's trail.
- User archival gathers every dependent row; ``move`` relocates them to
  per-type archives, ``snapshot`` leaves them live.
- Payloads using archive-only keys are rejected before anything moves.
"""

import pytest

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.dtos import Actor
from lifecycle_kernel.exceptions import (
    DocumentNotFoundError,
    OrderNotFoundError,
    ProductNotFoundError,
    ReservedFieldError,
    UnknownEntityTypeError,
    ValidationError,
)
from lifecycle_kernel.services.archival_service import UserArchiveMode

FIXED_ISO = "2024-01-01T12:00:00.000Z"


def seed_order(services, partition, order_id, user_id="U1"):
    services.store.claim_order(order_id, partition)
    services.store.insert(
        partition,
        order_id,
        {
            "orderId": order_id,
            "userId": user_id,
            "items": [{"productId": "P1", "size": "S", "quantity": 1, "price": 10}],
            "total": 10,
        },
    )


@pytest.fixture
def user_u1(services, make_user):
    """U1 with two completed orders and one notification."""
    services.store.insert(partitions.USERS, "U1", make_user("U1"))
    seed_order(services, partitions.COMPLETED, "ORD-A")
    seed_order(services, partitions.COMPLETED, "ORD-B")
    services.store.insert(
        partitions.NOTIFICATIONS,
        "NTC-1",
        {"notifID": "NTC-1", "userId": "U1", "orderId": "ORD-A", "read": False},
    )
    # someone else's row stays put
    seed_order(services, partitions.COMPLETED, "ORD-Z", user_id="U2")
    return "U1"


class TestSimpleEntities:
    def test_archive_product(self, services, make_product, admin_actor):
        original = make_product("P1", {"M": 4})
        services.store.insert(partitions.PRODUCTS, "P1", original)

        receipt = services.archival.archive_entity("product", "P1", admin_actor)

        assert receipt.archive_id.startswith("ARC-1704110400000-")
        assert receipt.archive_collection == partitions.REMOVED_PRODUCTS
        assert not services.store.exists(partitions.PRODUCTS, "P1")
        record = services.store.require(partitions.REMOVED_PRODUCTS, receipt.archive_id).payload
        assert record == {
            **original,
            "archivedAt": FIXED_ISO,
            "originalDocId": "P1",
            "originalCollection": "products",
            "archivedBy": admin_actor.email,
            "archivedByRole": "Admin",
        }
        entries = services.activity.list_for_email(admin_actor.email)
        assert entries[-1].action == "Archived product (P1)"
        assert entries[-1].product_id == "P1"

    def test_archive_seller(self, services, admin_actor):
        services.store.insert(partitions.SELLERS, "S1", {"sellerId": "S1", "shop": "Tees"})

        receipt = services.archival.archive_entity("seller", "S1", admin_actor)

        assert receipt.archive_collection == partitions.SELLER_ARCHIVE
        assert not services.store.exists(partitions.SELLERS, "S1")

    def test_missing_product(self, services, admin_actor):
        with pytest.raises(ProductNotFoundError):
            services.archival.archive_entity("product", "NOPE", admin_actor)

    def test_missing_seller(self, services, admin_actor):
        with pytest.raises(DocumentNotFoundError):
            services.archival.archive_entity("seller", "NOPE", admin_actor)

    def test_unknown_entity_type(self, services, admin_actor):
        with pytest.raises(UnknownEntityTypeError):
            services.archival.archive_entity("coupon", "C1", admin_actor)

    def test_reserved_field_rejected(self, services, make_product, admin_actor):
        services.store.insert(
            partitions.PRODUCTS, "P1", make_product("P1", archivedAt="yesterday")
        )

        with pytest.raises(ReservedFieldError) as exc_info:
            services.archival.archive_entity("product", "P1", admin_actor)

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.fields == ["archivedAt"]
        assert services.store.exists(partitions.PRODUCTS, "P1")
        assert services.store.count(partitions.REMOVED_PRODUCTS) == 0


class TestAdminArchive:
    @pytest.fixture
    def boss(self, services):
        services.store.insert(
            partitions.ADMINS, "A1", {"email": "boss@shop.example", "role": "Admin"}
        )
        actor = Actor("boss@shop.example", "Admin")
        services.activity.record("Order (ORD-1) is packed", actor, order_id="ORD-1")
        services.activity.record("Archived product (P1)", actor, product_id="P1")
        return "A1"

    def test_token_and_activity_bundle(self, services, boss, admin_actor, token_values):
        token_values.append(0xABC123)

        receipt = services.archival.archive_entity("admin", boss, admin_actor)

        assert receipt.remove_token == "R-ABC123"
        record = services.store.require(partitions.ADMIN_ARCHIVE, receipt.archive_id).payload
        assert record["removeId"] == "R-ABC123"
        assert [e["action"] for e in record["activityLogs"]] == [
            "Order (ORD-1) is packed",
            "Archived product (P1)",
        ]
        assert record["activityLogs"][0]["userEmail"] == "boss@shop.example"

    def test_removal_is_logged_with_token(self, services, boss, admin_actor, token_values):
        token_values.append(0x00002A)

        services.archival.archive_entity("admin", boss, admin_actor)

        entry = services.activity.list_recent(1)[0]
        assert entry.action == "Archived admin boss@shop.example (R-00002A)"
        assert entry.archived_admin_remove_id == "R-00002A"
        assert entry.user_email == admin_actor.email

    def test_token_redrawn_on_collision(self, services, boss, admin_actor, token_values):
        services.store.insert(
            partitions.ADMIN_ARCHIVE,
            "ARC-OLD",
            {"email": "old@shop.example", "removeId": "R-ABC123", "originalDocId": "A0"},
        )
        token_values.extend([0xABC123, 0x0000FF])

        receipt = services.archival.archive_entity("admin", boss, admin_actor)

        assert receipt.remove_token == "R-0000FF"


class TestOrderArchive:
    def test_archive_order_from_its_stage(self, services, admin_actor):
        seed_order(services, partitions.TO_SHIP, "ORD-1")

        receipt = services.archival.archive_entity("order", "ORD-1", admin_actor)

        assert receipt.archive_collection == "toshipArchive"
        assert services.store.find_in(partitions.ORDER_PARTITIONS, "ORD-1") == []
        assert services.store.locate_order("ORD-1") is None
        assert services.activity.list_for_order("ORD-1")[-1].action == "Archived order (ORD-1)"

    def test_archive_unknown_order(self, services, admin_actor):
        with pytest.raises(OrderNotFoundError):
            services.archival.archive_entity("order", "NOPE", admin_actor)


class TestArchiveUser:
    def test_move_mode(self, services, user_u1, admin_actor):
        receipt = services.archival.archive_user("U1", admin_actor)

        assert receipt.archive_collection == partitions.USERS_ARCHIVE
        assert receipt.dependent_count == 3
        assert not services.store.exists(partitions.USERS, "U1")

        record = services.store.require(partitions.USERS_ARCHIVE, receipt.archive_id).payload
        assert record["originalDocId"] == "U1"
        assert [r["originalDocId"] for r in record["dependents"]["completed"]] == ["ORD-A", "ORD-B"]
        assert len(record["dependents"]["notifications"]) == 1
        assert record["dependents"]["cartItems"] == []

        moved = services.store.list_collection("completedArchive")
        assert sorted(d.payload["originalDocId"] for d in moved) == ["ORD-A", "ORD-B"]
        assert {d.payload["userArchiveId"] for d in moved} == {receipt.archive_id}
        assert services.store.count("notificationsArchive") == 1
        assert services.store.locate_order("ORD-A") is None
        assert services.store.locate_order("ORD-B") is None

        # other users are untouched
        assert services.store.exists(partitions.COMPLETED, "ORD-Z")
        assert services.store.locate_order("ORD-Z").partition == partitions.COMPLETED

    def test_move_mode_log(self, services, user_u1, admin_actor):
        services.archival.archive_user("U1", admin_actor)

        entry = services.activity.list_recent(1)[0]
        assert entry.action == "Archived user U1 and all users data"
        assert entry.user_id == "U1"

    def test_snapshot_mode_leaves_dependents_live(self, services, user_u1, admin_actor):
        receipt = services.archival.archive_user("U1", admin_actor, mode=UserArchiveMode.SNAPSHOT)

        assert receipt.dependent_count == 3
        assert not services.store.exists(partitions.USERS, "U1")
        assert services.store.exists(partitions.COMPLETED, "ORD-A")
        assert services.store.count("completedArchive") == 0
        assert services.activity.list_recent(1)[0].action == "Archived user U1"

    def test_dependent_partitions_restricted(self, services, user_u1, admin_actor):
        receipt = services.archival.archive_user(
            "U1", admin_actor, dependent_partitions=[partitions.NOTIFICATIONS]
        )

        assert receipt.dependent_count == 1
        record = services.store.require(partitions.USERS_ARCHIVE, receipt.archive_id).payload
        assert list(record["dependents"]) == ["notifications"]
        assert services.store.exists(partitions.COMPLETED, "ORD-A")

    def test_user_found_by_user_id_field(self, services, admin_actor):
        services.store.insert(partitions.USERS, "auth-uid-9", {"userId": "U9", "email": "u9@x"})

        receipt = services.archival.archive_user("U9", admin_actor)

        record = services.store.require(partitions.USERS_ARCHIVE, receipt.archive_id).payload
        assert record["originalDocId"] == "auth-uid-9"

    def test_missing_user(self, services, admin_actor):
        with pytest.raises(DocumentNotFoundError):
            services.archival.archive_user("NOPE", admin_actor)

    def test_archive_entity_user_delegates(self, services, user_u1, admin_actor):
        receipt = services.archival.archive_entity("user", "U1", admin_actor)
        assert receipt.entity_type == "user"
        assert receipt.dependent_count == 3
