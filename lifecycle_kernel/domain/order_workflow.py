"""
Order and return/refund workflows (``lifecycle_kernel.domain.order_workflow``).

Responsibility
--------------
Pure value objects for the two state machines the engine drives: the order
lifecycle (each state is a storage partition) and the return/refund
sub-flow (states live in the request's ``status`` field).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* Order states map one-to-one onto lifecycle partitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``stamp_field`` names the ISO timestamp the
    transition adds to the payload; ``id_field``/``id_prefix`` name the
    stage identifier it mints, if any.
    """
    from_state: str
    to_state: str
    action: str
    stamp_field: str | None = None
    id_field: str | None = None
    id_prefix: str | None = None
    log_verb: str | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow '{self.name}': initial state '{self.initial_state}' "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow '{self.name}': transition '{t.action}' "
                    f"references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow '{self.name}': terminal state '{t.from_state}' "
                    "has an outgoing transition"
                )

    def transition_for(self, from_state: str, action: str) -> Transition:
        """Return the edge for ``action`` out of ``from_state``.

        Raises:
            InvalidTransitionError: The workflow has no such edge.
        """
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        raise InvalidTransitionError(self.name, from_state, action)

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)


class OrderState(str, Enum):
    PLACED = "Placed"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    RECEIVED = "Received"
    CANCELLED = "Cancelled"


class OrderAction(str, Enum):
    PACK = "pack"
    SHIP = "ship"
    RECEIVE = "receive"
    CANCEL = "cancel"


# State -> (partition, payload status)
_STATE_STORAGE: dict[OrderState, tuple[str, str]] = {
    OrderState.PLACED: (partitions.ORDERS, "Placed"),
    OrderState.PACKED: (partitions.TO_SHIP, "To Ship"),
    OrderState.SHIPPED: (partitions.TO_RECEIVE, "To Receive"),
    OrderState.RECEIVED: (partitions.COMPLETED, "Completed"),
    OrderState.CANCELLED: (partitions.CANCELLED, "Cancelled"),
}


def partition_for_state(state: OrderState | str) -> str:
    return _STATE_STORAGE[OrderState(state)][0]


def status_for_state(state: OrderState | str) -> str:
    return _STATE_STORAGE[OrderState(state)][1]


def state_for_partition(partition: str) -> OrderState:
    for state, (name, _status) in _STATE_STORAGE.items():
        if name == partition:
            return state
    raise KeyError(partition)


ORDER_WORKFLOW = Workflow(
    name="order",
    description="Order lifecycle across stage partitions",
    initial_state=OrderState.PLACED.value,
    states=tuple(s.value for s in OrderState),
    transitions=(
        Transition(
            from_state=OrderState.PLACED.value,
            to_state=OrderState.PACKED.value,
            action=OrderAction.PACK.value,
            stamp_field="packedAt",
            id_field="toshipID",
            id_prefix="TS",
            log_verb="packed",
        ),
        Transition(
            from_state=OrderState.PACKED.value,
            to_state=OrderState.SHIPPED.value,
            action=OrderAction.SHIP.value,
            stamp_field="shippedAt",
            id_field="toreceiveID",
            id_prefix="TR",
            log_verb="shipped",
        ),
        Transition(
            from_state=OrderState.SHIPPED.value,
            to_state=OrderState.RECEIVED.value,
            action=OrderAction.RECEIVE.value,
            stamp_field="receivedAt",
            log_verb="received",
        ),
        Transition(
            from_state=OrderState.PLACED.value,
            to_state=OrderState.CANCELLED.value,
            action=OrderAction.CANCEL.value,
            stamp_field="cancelledAt",
            log_verb="cancelled",
        ),
    ),
    terminal_states=(OrderState.RECEIVED.value, OrderState.CANCELLED.value),
)


class ReturnStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DISAPPROVED = "Disapproved"


class ReturnDecision(str, Enum):
    APPROVE = "approve"
    DISAPPROVE = "disapprove"


RETURN_WORKFLOW = Workflow(
    name="return_refund",
    description="Return/refund request resolution",
    initial_state=ReturnStatus.PENDING.value,
    states=tuple(s.value for s in ReturnStatus),
    transitions=(
        Transition(
            from_state=ReturnStatus.PENDING.value,
            to_state=ReturnStatus.APPROVED.value,
            action=ReturnDecision.APPROVE.value,
            stamp_field="resolvedAt",
            log_verb="approved",
        ),
        Transition(
            from_state=ReturnStatus.PENDING.value,
            to_state=ReturnStatus.DISAPPROVED.value,
            action=ReturnDecision.DISAPPROVE.value,
            stamp_field="resolvedAt",
            log_verb="disapproved",
        ),
    ),
    terminal_states=(ReturnStatus.APPROVED.value, ReturnStatus.DISAPPROVED.value),
)
