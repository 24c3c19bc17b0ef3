"""
NotificationService -- customer-facing order notifications.

Responsibility:
    Writes one ``notifications`` document per customer-visible order
    event, in the same transaction as the transition that caused it.

Architecture position:
    Kernel > Services.  Called by OrderLifecycleService.
"""

from enum import Enum

from sqlalchemy.orm import Session

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.services.base import BaseService
from lifecycle_kernel.services.document_store import DocumentStore
from lifecycle_kernel.services.identifier_service import IdentifierService

logger = get_logger("services.notification")


class NotificationKind(str, Enum):
    PACKED = "NTP"
    SHIPPED = "NTS"
    TO_RECEIVE = "NTR"
    COMPLETED = "NTC"
    CANCELLED = "NTX"


_TEMPLATES: dict[NotificationKind, tuple[str, str]] = {
    NotificationKind.PACKED: (
        "Order Packed",
        "Your order has been packed and is waiting to be shipped.",
    ),
    NotificationKind.SHIPPED: (
        "Order Shipped",
        "Your order {order_id} has been shipped.",
    ),
    NotificationKind.TO_RECEIVE: (
        "Order Ready to Receive",
        "Your order {order_id} is now ready to receive.",
    ),
    NotificationKind.COMPLETED: (
        "Order Completed",
        "Your order {order_id} has been received. Thank you for shopping!",
    ),
    NotificationKind.CANCELLED: (
        "Order Cancelled",
        "Your order {order_id} has been cancelled.",
    ),
}


class NotificationService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        store: DocumentStore | None = None,
        identifiers: IdentifierService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._store = store or DocumentStore(session)
        self._identifiers = identifiers or IdentifierService(session, self._clock)

    def notify(
        self,
        kind: NotificationKind,
        user_id: str | None,
        order_id: str,
    ) -> dict:
        """Append a notification; returns its payload."""
        title, message = _TEMPLATES[kind]
        notif_id = self._identifiers.next_id(kind.value)
        payload = {
            "notifID": notif_id,
            "userId": user_id,
            "title": title,
            "message": message.format(order_id=order_id),
            "orderId": order_id,
            "timestamp": self._clock.iso_now(),
            "read": False,
        }
        self._store.insert(partitions.NOTIFICATIONS, notif_id, payload)
        logger.debug(
            "notification_created",
            extra={"notif_id": notif_id, "order_id": order_id, "kind": kind.value},
        )
        return payload
