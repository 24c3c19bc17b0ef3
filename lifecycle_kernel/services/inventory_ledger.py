"""
InventoryLedger -- the only writer of product stock.

Responsibility:
    Applies signed per-size stock adjustments to product documents and
    restores order line items to stock when orders are removed, cancelled
    or refunded.

Architecture position:
    Kernel > Services -- imperative shell.  Called by
    OrderLifecycleService, ReturnService and the engine's AdjustStock
    operation.  Nothing else writes ``stock`` or ``totalStock``.

Invariants enforced:
    - ``totalStock`` equals the sum of the ``stock`` size map after every
      adjustment (recomputed, never incremented).
    - No size ever goes below zero.
    - Adjustments to one product are serialized: in-process KeyedLock on
      ``product:<id>``, then ``SELECT ... FOR UPDATE`` on the product row,
      then the document version compare-and-swap at flush.

Failure modes:
    - ProductNotFoundError: the product document does not exist.
    - InvalidStockError: unknown size, or the result would be negative.
    - OptimisticLockError: a concurrent writer moved the version (retried
      by the engine).
    - MissingProductReferenceError: restoration under the ``fail`` policy
      met a malformed line item or a missing product.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable

from sqlalchemy.orm import Session

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.dtos import (
    LineItem,
    RestorationLine,
    RestorationOutcome,
    RestorationReport,
    StockLevel,
)
from lifecycle_kernel.exceptions import (
    InvalidLineItemError,
    InvalidStockError,
    MissingProductReferenceError,
    ProductNotFoundError,
)
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.services.base import BaseService
from lifecycle_kernel.services.document_store import DocumentStore, payload_of
from lifecycle_kernel.utils.keyed_lock import KeyedLock

logger = get_logger("services.inventory")

SIZES: tuple[str, ...] = ("S", "M", "L", "XL")


class MissingProductPolicy(str, Enum):
    """What stock restoration does with a line it cannot apply."""

    SKIP = "skip"
    FAIL = "fail"


def total_of(stock: dict[str, Any]) -> int:
    """Sum of every numeric size count in a stock map."""
    return sum(
        int(v) for v in stock.values()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    )


class InventoryLedger(BaseService):
    """
    Service for product stock adjustments.

    Contract:
        ``adjust_stock`` applies one signed delta to one size of one
        product and returns the resulting StockLevel.

    Guarantees:
        - delta == 0 is a no-op returning the current level.
        - The product payload is replaced wholesale, so the version token
          advances on every effective adjustment.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT track ``sold`` counts; checkout owns those.
    """

    def __init__(
        self,
        session: Session,
        store: DocumentStore | None = None,
        locks: KeyedLock | None = None,
    ):
        super().__init__(session)
        self._store = store or DocumentStore(session)
        self._locks = locks or KeyedLock()

    def adjust_stock(self, product_id: str, size: str, delta: int) -> StockLevel:
        """
        Apply ``delta`` to ``product_id``'s ``size`` stock.

        Raises:
            ProductNotFoundError: No such product.
            InvalidStockError: Unknown size or negative result.
        """
        if size not in SIZES:
            raise InvalidStockError(product_id, size, f"size must be one of {', '.join(SIZES)}")
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidStockError(product_id, size, "delta must be an integer")

        with self._locks.hold(f"product:{product_id}"):
            document = self._store.get(partitions.PRODUCTS, product_id, for_update=True)
            if document is None:
                raise ProductNotFoundError(product_id)

            payload = payload_of(document)
            raw_stock = payload.get("stock")
            stock = dict(raw_stock) if isinstance(raw_stock, dict) else {}
            current = int(stock.get(size) or 0)

            if delta == 0:
                return self._level(product_id, size, current, stock)

            updated = current + delta
            if updated < 0:
                raise InvalidStockError(
                    product_id,
                    size,
                    f"stock would drop to {updated} (have {current}, delta {delta})",
                )

            stock[size] = updated
            payload["stock"] = stock
            payload["totalStock"] = total_of(stock)
            self._store.replace(document, payload)

        logger.info(
            "stock_adjusted",
            extra={
                "product_id": product_id,
                "size": size,
                "delta": delta,
                "size_stock": updated,
                "total_stock": payload["totalStock"],
            },
        )
        return self._level(product_id, size, updated, stock)

    @staticmethod
    def _level(product_id: str, size: str, size_stock: int, stock: dict[str, Any]) -> StockLevel:
        return StockLevel(
            product_id=product_id,
            size=size,
            size_stock=size_stock,
            total_stock=total_of(stock),
            stock=MappingProxyType(dict(stock)),
        )

    def restore_line_items(
        self,
        order_id: str,
        items: Iterable[Any],
        policy: MissingProductPolicy | str = MissingProductPolicy.SKIP,
    ) -> RestorationReport:
        """
        Return every line item's quantity to stock.

        Lines that cannot be applied (malformed, unknown size, missing
        product) are skipped with a warning under ``skip`` and abort the
        whole operation under ``fail``.

        Raises:
            MissingProductReferenceError: A line could not be applied and
                the policy is ``fail``.
        """
        policy = MissingProductPolicy(policy)
        lines: list[RestorationLine] = []

        for index, raw in enumerate(items or ()):
            product_ref = raw.get("productId") if isinstance(raw, dict) else None
            try:
                item = LineItem.from_payload(raw)
                level = self.adjust_stock(item.product_id, item.size, item.quantity)
            except (InvalidLineItemError, InvalidStockError, ProductNotFoundError) as exc:
                if policy is MissingProductPolicy.FAIL:
                    raise MissingProductReferenceError(order_id, product_ref) from exc
                logger.warning(
                    "stock_restore_line_skipped",
                    extra={
                        "order_id": order_id,
                        "line_index": index,
                        "product_id": product_ref,
                        "reason": str(exc),
                    },
                )
                lines.append(
                    RestorationLine(
                        index=index,
                        outcome=RestorationOutcome.SKIPPED,
                        product_id=product_ref if isinstance(product_ref, str) else None,
                        reason=str(exc),
                    )
                )
                continue

            lines.append(
                RestorationLine(
                    index=index,
                    outcome=RestorationOutcome.RESTORED,
                    product_id=item.product_id,
                    size=item.size,
                    quantity=item.quantity,
                    level=level,
                )
            )

        report = RestorationReport(order_id=order_id, lines=tuple(lines))
        logger.info(
            "stock_restored",
            extra={
                "order_id": order_id,
                "restored_lines": len(report.restored),
                "skipped_lines": len(report.skipped),
                "restored_quantity": report.restored_quantity,
            },
        )
        return report
