"""
OrderLifecycleService -- moves orders between stage partitions.

Responsibility:
    Executes the order workflow (pack, ship, receive, cancel), bulk
    packing, and removal of orders with stock restoration.  Each move is
    expressed as: insert into the destination partition, delete from the
    source, move the order locator, append one activity log entry and the
    customer notification(s).

Architecture position:
    Kernel > Services -- imperative shell.  Called by LifecycleEngine,
    which wraps every call in one transaction.

Invariants enforced:
    - An order is live in exactly one partition.  The locator row is
      locked (FOR UPDATE) and version-checked, and the document insert,
      document delete and locator move all flush in the caller's
      transaction.  A crash leaves either the old state or the new one.
    - Transitions follow ORDER_WORKFLOW only.
    - Line items are snapshots; transitions never rewrite them.

Failure modes:
    - OrderNotFoundError: the order is not in the transition's source
      partition.
    - InvalidTransitionError: the workflow has no such edge.
    - InvalidLineItemError: ship names an item the order does not contain.
    - MissingProductReferenceError: restoration under the ``fail`` policy.
    - OptimisticLockError: concurrent move of the same order.

Audit relevance:
    Every transition and removal appends exactly one ActivityLogEntry
    naming the order ("Order (<orderId>) is packed").
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from sqlalchemy.orm import Session

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.domain.dtos import (
    Actor,
    BulkItemResult,
    BulkResult,
    LineItem,
    RestorationReport,
)
from lifecycle_kernel.domain.order_workflow import (
    ORDER_WORKFLOW,
    OrderAction,
    OrderState,
    Transition,
    partition_for_state,
    state_for_partition,
    status_for_state,
)
from lifecycle_kernel.exceptions import (
    InvalidLineItemError,
    InvalidTransitionError,
    LifecycleKernelError,
    OptimisticLockError,
    OrderNotFoundError,
)
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.services.activity_log_service import ActivityLogService
from lifecycle_kernel.services.base import BaseService
from lifecycle_kernel.services.document_store import DocumentStore, payload_of
from lifecycle_kernel.services.identifier_service import IdentifierService
from lifecycle_kernel.services.inventory_ledger import (
    InventoryLedger,
    MissingProductPolicy,
)
from lifecycle_kernel.services.notification_service import (
    NotificationKind,
    NotificationService,
)
from lifecycle_kernel.utils.keyed_lock import KeyedLock

logger = get_logger("services.order_lifecycle")

_NOTIFICATIONS: dict[str, tuple[NotificationKind, ...]] = {
    OrderAction.PACK.value: (NotificationKind.PACKED,),
    OrderAction.SHIP.value: (NotificationKind.SHIPPED, NotificationKind.TO_RECEIVE),
    OrderAction.RECEIVE.value: (NotificationKind.COMPLETED,),
    OrderAction.CANCEL.value: (NotificationKind.CANCELLED,),
}

PayloadHook = Callable[[dict[str, Any]], None]


class OrderLifecycleService(BaseService):
    """
    Service for order stage transitions.

    Contract:
        Each public method performs one logical operation inside the
        caller's transaction and flushes.  ``pack_many`` isolates items
        with savepoints so one failure does not undo the others.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT create orders from checkouts; ``place`` exists for
          seeding and tests.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: KeyedLock | None = None,
        store: DocumentStore | None = None,
        identifiers: IdentifierService | None = None,
        activity: ActivityLogService | None = None,
        ledger: InventoryLedger | None = None,
        notifications: NotificationService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLock()
        self._store = store or DocumentStore(session)
        self._identifiers = identifiers or IdentifierService(session, self._clock)
        self._activity = activity or ActivityLogService(
            session, self._clock, self._identifiers
        )
        self._ledger = ledger or InventoryLedger(session, self._store, self._locks)
        self._notifications = notifications or NotificationService(
            session, self._clock, self._store, self._identifiers
        )

    # -----------------------------------------------------------------
    # Seeding
    # -----------------------------------------------------------------

    def place(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """
        Register a new order in the ``orders`` partition.

        Raises:
            InvalidLineItemError: Missing orderId or malformed items.
            DuplicateOrderError: The orderId is already live.
        """
        order_id = payload.get("orderId")
        if not isinstance(order_id, str) or not order_id.strip():
            raise InvalidLineItemError("order has no orderId", dict(payload))
        items = payload.get("items")
        if not isinstance(items, list):
            raise InvalidLineItemError("order items must be a list", dict(payload))
        for raw in items:
            LineItem.from_payload(raw)

        body = dict(payload)
        body["status"] = status_for_state(OrderState.PLACED)
        body.setdefault("createdAt", self._clock.iso_now())

        with self._locks.hold(f"order:{order_id}"):
            self._store.claim_order(order_id, partitions.ORDERS)
            self._store.insert(partitions.ORDERS, order_id, body)

        logger.info(
            "order_placed",
            extra={"order_id": order_id, "line_count": len(items)},
        )
        return payload_of(self._store.require(partitions.ORDERS, order_id))

    # -----------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------

    def pack(self, order_id: str, actor: Actor) -> dict[str, Any]:
        return self.transition(order_id, OrderAction.PACK, actor)

    def ship(
        self,
        order_id: str,
        actor: Actor,
        item: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Move a packed order to ``toReceive``.

        The whole order moves.  When ``item`` is given it must name one of
        the order's lines by productId and size; that line is recorded as
        ``shippedItem``.
        """
        hook = None
        if item is not None:
            hook = lambda payload: self._record_shipped_item(order_id, payload, item)
        return self.transition(order_id, OrderAction.SHIP, actor, before_write=hook)

    def receive(self, order_id: str, actor: Actor) -> dict[str, Any]:
        return self.transition(order_id, OrderAction.RECEIVE, actor)

    def cancel(
        self,
        order_id: str,
        actor: Actor,
        reason: str | None = None,
        *,
        restock: bool = True,
        policy: MissingProductPolicy | str = MissingProductPolicy.SKIP,
    ) -> dict[str, Any]:
        """Cancel a placed order, returning its stock when ``restock`` is set."""

        def hook(payload: dict[str, Any]) -> None:
            payload["cancelReason"] = reason
            payload["restocked"] = restock

        moved = self.transition(order_id, OrderAction.CANCEL, actor, before_write=hook)
        if restock:
            self._ledger.restore_line_items(order_id, moved.get("items"), policy)
        return moved

    def transition(
        self,
        order_id: str,
        action: OrderAction | str,
        actor: Actor,
        *,
        before_write: PayloadHook | None = None,
    ) -> dict[str, Any]:
        """
        Apply one workflow action to one order.

        Raises:
            InvalidTransitionError: ``action`` is not an order action.
            OrderNotFoundError: The order is not in the action's source
                partition.
        """
        action_name = action.value if isinstance(action, OrderAction) else str(action)
        edge = self._edge_for(action_name)
        source = partition_for_state(edge.from_state)
        destination = partition_for_state(edge.to_state)

        with self._locks.hold(f"order:{order_id}"):
            locator = self._store.locate_order(order_id, for_update=True)
            if locator is None or locator.partition != source:
                raise OrderNotFoundError(order_id, source)

            document = self._store.get(source, order_id, for_update=True)
            if document is None:
                logger.error(
                    "order_locator_orphaned",
                    extra={"order_id": order_id, "partition": source},
                )
                raise OrderNotFoundError(order_id, source)

            payload = payload_of(document)
            payload["status"] = status_for_state(edge.to_state)
            if edge.stamp_field:
                payload[edge.stamp_field] = self._clock.iso_now()
            if edge.id_field and edge.id_prefix:
                payload[edge.id_field] = self._identifiers.next_id(edge.id_prefix)
            if before_write is not None:
                before_write(payload)

            self._store.insert(destination, order_id, payload)
            self._store.delete(document)
            self._store.move_order(locator, destination)

            user_id = payload.get("userId")
            self._activity.record(
                f"Order ({order_id}) is {edge.log_verb}",
                actor,
                order_id=order_id,
                user_id=user_id if isinstance(user_id, str) else None,
            )
            for kind in _NOTIFICATIONS.get(edge.action, ()):
                self._notifications.notify(
                    kind, user_id if isinstance(user_id, str) else None, order_id
                )

        logger.info(
            "order_transitioned",
            extra={
                "order_id": order_id,
                "action": edge.action,
                "from_partition": source,
                "to_partition": destination,
            },
        )
        return payload

    @staticmethod
    def _edge_for(action_name: str) -> Transition:
        for edge in ORDER_WORKFLOW.transitions:
            if edge.action == action_name:
                return edge
        raise InvalidTransitionError(ORDER_WORKFLOW.name, "*", action_name)

    @staticmethod
    def _record_shipped_item(
        order_id: str,
        payload: dict[str, Any],
        item: Mapping[str, Any],
    ) -> None:
        wanted_product = item.get("productId")
        wanted_size = item.get("size")
        for raw in payload.get("items") or ():
            if (
                isinstance(raw, Mapping)
                and raw.get("productId") == wanted_product
                and raw.get("size") == wanted_size
            ):
                payload["shippedItem"] = dict(raw)
                return
        raise InvalidLineItemError(
            f"order {order_id} has no line for product {wanted_product!r} size {wanted_size!r}",
            dict(item),
        )

    # -----------------------------------------------------------------
    # Bulk
    # -----------------------------------------------------------------

    def pack_many(self, order_ids: Iterable[str], actor: Actor) -> BulkResult:
        """
        Pack several orders inside the caller's transaction.

        Each order runs in its own savepoint: a failed order is rolled
        back alone and reported; the others stay packed.  Lost
        optimistic-lock races propagate so the whole unit can be retried.
        """
        outcomes: list[BulkItemResult] = []
        for order_id in order_ids:
            savepoint = self.session.begin_nested()
            try:
                moved = self.pack(order_id, actor)
                savepoint.commit()
            except OptimisticLockError:
                savepoint.rollback()
                raise
            except LifecycleKernelError as exc:
                savepoint.rollback()
                logger.warning(
                    "bulk_item_failed",
                    extra={"order_id": order_id, "error_code": exc.code},
                )
                outcomes.append(
                    BulkItemResult(
                        item_id=order_id,
                        success=False,
                        error_code=exc.code,
                        error_message=str(exc),
                    )
                )
                continue
            outcomes.append(BulkItemResult(item_id=order_id, success=True, payload=moved))

        result = BulkResult(operation="pack_orders_bulk", outcomes=tuple(outcomes))
        logger.info(
            "bulk_pack_completed",
            extra={
                "requested": len(outcomes),
                "failed": len(result.failed),
            },
        )
        return result

    # -----------------------------------------------------------------
    # Removal
    # -----------------------------------------------------------------

    def remove(
        self,
        order_id: str,
        actor: Actor,
        partition: str,
        policy: MissingProductPolicy | str = MissingProductPolicy.SKIP,
    ) -> RestorationReport:
        """
        Delete an order from ``partition`` and return its stock.

        Raises:
            InvalidTransitionError: Removal is not offered on ``partition``.
            OrderNotFoundError: The order is not in ``partition``.
            MissingProductReferenceError: Under the ``fail`` policy.
        """
        if partition not in partitions.REMOVABLE_ORDER_PARTITIONS:
            state = (
                state_for_partition(partition).value
                if partition in partitions.ORDER_PARTITIONS
                else partition
            )
            raise InvalidTransitionError(ORDER_WORKFLOW.name, state, "remove")

        with self._locks.hold(f"order:{order_id}"):
            locator = self._store.locate_order(order_id, for_update=True)
            if locator is None or locator.partition != partition:
                raise OrderNotFoundError(order_id, partition)
            document = self._store.get(partition, order_id, for_update=True)
            if document is None:
                raise OrderNotFoundError(order_id, partition)

            payload = payload_of(document)
            report = self._ledger.restore_line_items(
                order_id, payload.get("items"), policy
            )
            self._store.delete(document)
            self._store.release_order(locator)

            user_id = payload.get("userId")
            self._activity.record(
                f"Order ({order_id}) is removed",
                actor,
                order_id=order_id,
                user_id=user_id if isinstance(user_id, str) else None,
            )

        logger.info(
            "order_removed",
            extra={
                "order_id": order_id,
                "partition": partition,
                "restored_quantity": report.restored_quantity,
                "skipped_lines": len(report.skipped),
            },
        )
        return report

    def remove_to_receive(
        self,
        order_id: str,
        actor: Actor,
        policy: MissingProductPolicy | str = MissingProductPolicy.SKIP,
    ) -> RestorationReport:
        return self.remove(order_id, actor, partitions.TO_RECEIVE, policy)
