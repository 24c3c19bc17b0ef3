"""
ReturnService -- return/refund requests on completed orders.

Responsibility:
    Opens return requests for completed orders and resolves them
    (approve/disapprove).  Approval optionally returns the order's line
    items to stock and records the refund amount.

Architecture position:
    Kernel > Services -- imperative shell.  Called by LifecycleEngine.

Invariants enforced:
    - Requests are opened only for orders live in ``completed``.
    - At most one Pending request per order.
    - Resolution is monotonic: Pending -> Approved | Disapproved, never
      back.  The request document's version token makes two concurrent
      resolutions impossible.

Failure modes:
    - OrderNotFoundError: order not in ``completed``.
    - ReturnAlreadyRequestedError: a Pending request exists.
    - ReturnRequestNotFoundError: unknown request id.
    - ReturnAlreadyResolvedError: request already resolved.
    - InvalidTransitionError: unknown decision.
"""

from typing import Any

from sqlalchemy.orm import Session

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.domain.dtos import Actor
from lifecycle_kernel.domain.order_workflow import (
    RETURN_WORKFLOW,
    ReturnDecision,
    ReturnStatus,
)
from lifecycle_kernel.exceptions import (
    OrderNotFoundError,
    ReturnAlreadyRequestedError,
    ReturnAlreadyResolvedError,
    ReturnRequestNotFoundError,
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
from lifecycle_kernel.utils.keyed_lock import KeyedLock

logger = get_logger("services.returns")


class ReturnService(BaseService):
    """
    Service for return/refund requests.

    Contract:
        ``request_return`` and ``resolve_return`` each return the request
        payload as stored after the call.  Both flush; neither commits.

    Guarantees:
        - An approved request restocks each line at most once, because
          the Pending -> Approved step happens once per request.
        - Every request and resolution appends one activity entry.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT move the order out of ``completed``; the return record
          lives alongside it in ``return_refund``.
        - Does NOT pay refunds; ``refundAmount`` is recorded only.
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

    def request_return(
        self,
        order_id: str,
        actor: Actor,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Open a Pending return request for a completed order."""
        with self._locks.hold(f"order:{order_id}"):
            locator = self._store.locate_order(order_id, for_update=True)
            if locator is None or locator.partition != partitions.COMPLETED:
                raise OrderNotFoundError(order_id, partitions.COMPLETED)
            order = self._store.get(partitions.COMPLETED, order_id)
            if order is None:
                raise OrderNotFoundError(order_id, partitions.COMPLETED)

            for existing in self._store.find_by_order(partitions.RETURN_REFUND, order_id):
                if existing.payload.get("status") == ReturnStatus.PENDING.value:
                    raise ReturnAlreadyRequestedError(order_id, existing.doc_id)

            order_payload = payload_of(order)
            request_id = self._identifiers.next_id(IdentifierService.RETURN_REQUEST)
            payload = {
                "returnId": request_id,
                "orderId": order_id,
                "userId": order_payload.get("userId"),
                "reason": reason,
                "status": RETURN_WORKFLOW.initial_state,
                "requestedAt": self._clock.iso_now(),
                "requestedBy": actor.email,
                "items": order_payload.get("items") or [],
                "total": order_payload.get("total"),
            }
            self._store.insert(partitions.RETURN_REFUND, request_id, payload)
            self._activity.record(
                f"Return requested for order ({order_id})",
                actor,
                order_id=order_id,
                user_id=payload["userId"] if isinstance(payload["userId"], str) else None,
            )

        logger.info(
            "return_requested",
            extra={"request_id": request_id, "order_id": order_id},
        )
        return payload

    def resolve_return(
        self,
        request_id: str,
        decision: ReturnDecision | str,
        actor: Actor,
        *,
        restock_on_approval: bool = True,
        policy: MissingProductPolicy | str = MissingProductPolicy.SKIP,
    ) -> dict[str, Any]:
        """Approve or disapprove a Pending request."""
        decision_name = (
            decision.value if isinstance(decision, ReturnDecision) else str(decision)
        )

        with self._locks.hold(f"return:{request_id}"):
            document = self._store.get(
                partitions.RETURN_REFUND, request_id, for_update=True
            )
            if document is None:
                raise ReturnRequestNotFoundError(request_id)

            payload = payload_of(document)
            status = payload.get("status", RETURN_WORKFLOW.initial_state)
            if status in RETURN_WORKFLOW.terminal_states:
                raise ReturnAlreadyResolvedError(request_id, status)

            edge = RETURN_WORKFLOW.transition_for(status, decision_name)
            payload["status"] = edge.to_state
            payload["resolvedAt"] = self._clock.iso_now()
            payload["resolvedBy"] = actor.email

            order_id = payload.get("orderId")
            restocked = False
            if edge.to_state == ReturnStatus.APPROVED.value:
                payload["refundAmount"] = payload.get("total")
                if restock_on_approval:
                    self._ledger.restore_line_items(
                        order_id, payload.get("items"), policy
                    )
                    restocked = True
            payload["restocked"] = restocked

            self._store.replace(document, payload)
            self._activity.record(
                f"Return request ({request_id}) for order ({order_id}) is {edge.log_verb}",
                actor,
                order_id=order_id,
                user_id=payload.get("userId") if isinstance(payload.get("userId"), str) else None,
            )

        logger.info(
            "return_resolved",
            extra={
                "request_id": request_id,
                "order_id": order_id,
                "decision": decision_name,
                "restocked": restocked,
            },
        )
        return payload
