"""
Partition names and the static archive <-> origin mapping.

Pure constants.  A "partition" is one logical collection inside the
``documents`` table.  Names follow the console's collections verbatim so
exported payloads stay interchangeable with the live console data.
"""

from types import MappingProxyType

# Order lifecycle partitions
ORDERS = "orders"
TO_SHIP = "toShip"
TO_RECEIVE = "toReceive"
COMPLETED = "completed"
CANCELLED = "cancelled"

ORDER_PARTITIONS: tuple[str, ...] = (ORDERS, TO_SHIP, TO_RECEIVE, COMPLETED, CANCELLED)

# Removal with stock restoration is offered on these tabs only
REMOVABLE_ORDER_PARTITIONS: tuple[str, ...] = (ORDERS, TO_SHIP, TO_RECEIVE)

# Side records
RETURN_REFUND = "return_refund"
NOTIFICATIONS = "notifications"

# Entity partitions
USERS = "users"
PRODUCTS = "products"
SELLERS = "seller"
ADMINS = "admins"

# Archive partitions
USERS_ARCHIVE = "usersArchive"
REMOVED_PRODUCTS = "removedProducts"
SELLER_ARCHIVE = "sellerArchive"
ADMIN_ARCHIVE = "adminArchive"

# Live partition -> per-type archive partition for user-owned rows
DEPENDENT_ARCHIVES = MappingProxyType({
    "shippingLocations": "shippingLocationsArchive",
    "chatMessages": "chatMessagesArchive",
    COMPLETED: "completedArchive",
    CANCELLED: "cancelledArchive",
    "cartItems": "cartItemsArchive",
    "measurements": "measurementsArchive",
    NOTIFICATIONS: "notificationsArchive",
    ORDERS: "ordersArchive",
    RETURN_REFUND: "return_refundArchive",
    TO_RECEIVE: "toreceiveArchive",
    TO_SHIP: "toshipArchive",
})

# Simple entity type -> (live partition, archive partition)
ENTITY_ARCHIVES = MappingProxyType({
    "product": (PRODUCTS, REMOVED_PRODUCTS),
    "seller": (SELLERS, SELLER_ARCHIVE),
    "admin": (ADMINS, ADMIN_ARCHIVE),
})

ORDER_ENTITY = "order"

# Archive partition -> live partition it restores into
ARCHIVE_ORIGINS = MappingProxyType({
    USERS_ARCHIVE: USERS,
    **{archive: live for live, archive in ENTITY_ARCHIVES.values()},
    **{archive: live for live, archive in DEPENDENT_ARCHIVES.items()},
})

ARCHIVE_PARTITIONS: tuple[str, ...] = tuple(ARCHIVE_ORIGINS)

# Keys that only archive records may carry
ARCHIVED_AT = "archivedAt"
ORIGINAL_DOC_ID = "originalDocId"
ORIGINAL_COLLECTION = "originalCollection"
ARCHIVED_BY = "archivedBy"
ARCHIVED_BY_ROLE = "archivedByRole"
REMOVE_ID = "removeId"
ACTIVITY_LOGS = "activityLogs"
DEPENDENTS = "dependents"
USER_ARCHIVE_ID = "userArchiveId"

RESERVED_ARCHIVE_FIELDS: frozenset[str] = frozenset({
    ARCHIVED_AT,
    ORIGINAL_DOC_ID,
    ORIGINAL_COLLECTION,
    ARCHIVED_BY,
    ARCHIVED_BY_ROLE,
    REMOVE_ID,
    ACTIVITY_LOGS,
    DEPENDENTS,
    USER_ARCHIVE_ID,
})


def archive_partition_for(live_partition: str) -> str:
    """Per-type archive partition of a live partition (KeyError if none)."""
    if live_partition == USERS:
        return USERS_ARCHIVE
    for live, archive in ENTITY_ARCHIVES.values():
        if live == live_partition:
            return archive
    return DEPENDENT_ARCHIVES[live_partition]


def origin_of(archive_partition: str) -> str:
    """Live partition an archive partition restores into (KeyError if none)."""
    return ARCHIVE_ORIGINS[archive_partition]
