"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable values that cross the kernel boundary: the
    acting principal (Actor), line items parsed from order payloads, stock
    levels, restoration reports, bulk outcomes and archive receipts.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - LineItem quantities are positive integers; productId and size are
      non-empty strings.  Anything else is rejected at parse time.
    - StockLevel.total_stock equals the sum of size_stock.

Failure modes:
    - InvalidLineItemError from LineItem.from_payload on malformed items.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from lifecycle_kernel.exceptions import InvalidLineItemError

ADMIN_ROLES: frozenset[str] = frozenset({"admin", "super admin", "superadmin"})


@dataclass(frozen=True)
class Actor:
    """
    The principal performing an operation, resolved at the API boundary.

    Contract:
        ``email`` and ``role`` are recorded on every activity log entry and
        archive record the actor produces.
    """

    email: str
    role: str
    user_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role.strip().lower() in ADMIN_ROLES


SYSTEM_ACTOR = Actor(email="system@lifecycle.local", role="System")


@dataclass(frozen=True)
class LineItem:
    """Snapshot of one order line.  Never rewritten from product edits."""

    product_id: str
    size: str
    quantity: int
    price: Any = None
    name: str | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> LineItem:
        """
        Parse a line item as stored in an order payload.

        Raises:
            InvalidLineItemError: Missing or malformed productId, size or
                quantity.
        """
        if not isinstance(raw, Mapping):
            raise InvalidLineItemError("line item is not an object", raw)

        product_id = raw.get("productId")
        if not isinstance(product_id, str) or not product_id.strip():
            raise InvalidLineItemError("missing productId", dict(raw))

        size = raw.get("size")
        if not isinstance(size, str) or not size.strip():
            raise InvalidLineItemError("missing size", dict(raw))

        quantity = raw.get("quantity")
        if isinstance(quantity, bool):
            raise InvalidLineItemError("quantity is not a number", dict(raw))
        if isinstance(quantity, float) and quantity.is_integer():
            quantity = int(quantity)
        if not isinstance(quantity, int):
            raise InvalidLineItemError("quantity is not a whole number", dict(raw))
        if quantity <= 0:
            raise InvalidLineItemError("quantity must be positive", dict(raw))

        return cls(
            product_id=product_id,
            size=size.strip(),
            quantity=quantity,
            price=raw.get("price"),
            name=raw.get("name"),
        )

    def matches(self, raw: Any) -> bool:
        """True when ``raw`` names the same productId and size."""
        return (
            isinstance(raw, Mapping)
            and raw.get("productId") == self.product_id
            and raw.get("size") == self.size
        )


@dataclass(frozen=True)
class StockLevel:
    """Stock of one product after an adjustment."""

    product_id: str
    size: str
    size_stock: int
    total_stock: int
    stock: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))


class RestorationOutcome(str, Enum):
    RESTORED = "restored"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RestorationLine:
    """Result of restoring one line item."""

    index: int
    outcome: RestorationOutcome
    product_id: str | None = None
    size: str | None = None
    quantity: int = 0
    reason: str | None = None
    level: StockLevel | None = None


@dataclass(frozen=True)
class RestorationReport:
    """Itemized result of restoring an order's line items to stock."""

    order_id: str
    lines: tuple[RestorationLine, ...] = ()

    @property
    def restored(self) -> tuple[RestorationLine, ...]:
        return tuple(l for l in self.lines if l.outcome == RestorationOutcome.RESTORED)

    @property
    def skipped(self) -> tuple[RestorationLine, ...]:
        return tuple(l for l in self.lines if l.outcome == RestorationOutcome.SKIPPED)

    @property
    def restored_quantity(self) -> int:
        return sum(l.quantity for l in self.restored)


@dataclass(frozen=True)
class BulkItemResult:
    """Outcome of one item in a bulk operation."""

    item_id: str
    success: bool
    payload: Mapping[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class BulkResult:
    """Per-item outcomes of a bulk operation, in request order."""

    operation: str
    outcomes: tuple[BulkItemResult, ...] = ()

    @property
    def all_succeeded(self) -> bool:
        return all(o.success for o in self.outcomes)

    @property
    def failed(self) -> tuple[BulkItemResult, ...]:
        return tuple(o for o in self.outcomes if not o.success)

    @property
    def succeeded(self) -> tuple[BulkItemResult, ...]:
        return tuple(o for o in self.outcomes if o.success)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self):
        return iter(self.outcomes)


@dataclass(frozen=True)
class ArchiveReceipt:
    """
    Returned by every archival.

    ``archive_id`` locates the record; ``remove_token`` is the admin
    ``R-XXXXXX`` token (admin archives only) that also restores it.
    """

    archive_id: str
    archive_collection: str
    entity_type: str
    entity_id: str
    remove_token: str | None = None
    dependent_count: int = 0
