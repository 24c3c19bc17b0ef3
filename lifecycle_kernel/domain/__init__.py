"""
Pure domain layer.

Value objects, workflows and partition constants with NO dependencies on
the ORM, the database or I/O (SystemClock excepted).
"""

from lifecycle_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from lifecycle_kernel.domain.dtos import (
    Actor,
    ArchiveReceipt,
    BulkItemResult,
    BulkResult,
    LineItem,
    RestorationLine,
    RestorationOutcome,
    RestorationReport,
    StockLevel,
)
from lifecycle_kernel.domain.order_workflow import (
    ORDER_WORKFLOW,
    RETURN_WORKFLOW,
    OrderAction,
    OrderState,
    ReturnDecision,
    ReturnStatus,
    Transition,
    Workflow,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Actor",
    "ArchiveReceipt",
    "BulkItemResult",
    "BulkResult",
    "LineItem",
    "RestorationLine",
    "RestorationOutcome",
    "RestorationReport",
    "StockLevel",
    "ORDER_WORKFLOW",
    "RETURN_WORKFLOW",
    "OrderAction",
    "OrderState",
    "ReturnDecision",
    "ReturnStatus",
    "Transition",
    "Workflow",
]
