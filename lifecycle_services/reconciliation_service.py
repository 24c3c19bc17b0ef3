"""
ReconciliationService -- order placement consistency check.

Responsibility:
    Compares the order documents across the lifecycle partitions with the
    ``order_locators`` table and reports every order that breaks the
    "live in exactly one partition" rule.

Architecture: lifecycle_services -- imperative shell, read-only.
    Used by the engine facade's ``reconcile_orders`` and by operators
    checking a database that was written outside the engine.

Invariants checked:
    - No orderId appears in more than one lifecycle partition.
    - Every live order document has a locator.
    - Every locator points at a partition holding the document.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.models.document import Document
from lifecycle_kernel.services.document_store import DocumentStore

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class PartitionMismatch:
    order_id: str
    locator_partition: str
    document_partition: str


@dataclass(frozen=True)
class ReconciliationReport:
    """Findings of one reconciliation pass; empty tuples mean consistent."""

    checked_orders: int
    duplicates: dict[str, tuple[str, ...]] = field(default_factory=dict)
    missing_locators: tuple[str, ...] = ()
    orphan_locators: tuple[str, ...] = ()
    partition_mismatches: tuple[PartitionMismatch, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not (
            self.duplicates
            or self.missing_locators
            or self.orphan_locators
            or self.partition_mismatches
        )


class ReconciliationService:
    """Read-only order placement checks.

    Non-goals:
        - Does NOT repair anything; findings are reported, operators decide.
    """

    def __init__(self, session: Session, store: DocumentStore | None = None) -> None:
        self._session = session
        self._store = store or DocumentStore(session)

    def reconcile_orders(self) -> ReconciliationReport:
        placements: dict[str, list[str]] = defaultdict(list)
        rows = self._session.execute(
            select(Document.doc_id, Document.collection).where(
                Document.collection.in_(partitions.ORDER_PARTITIONS)
            )
        ).all()
        for doc_id, collection in rows:
            placements[doc_id].append(collection)

        locators = {loc.order_id: loc.partition for loc in self._store.list_locators()}

        duplicates = {
            order_id: tuple(sorted(found))
            for order_id, found in sorted(placements.items())
            if len(found) > 1
        }
        missing = tuple(sorted(set(placements) - set(locators)))
        orphans = tuple(sorted(set(locators) - set(placements)))
        mismatches = tuple(
            PartitionMismatch(order_id, locators[order_id], found[0])
            for order_id, found in sorted(placements.items())
            if len(found) == 1
            and order_id in locators
            and locators[order_id] != found[0]
        )

        report = ReconciliationReport(
            checked_orders=len(placements),
            duplicates=duplicates,
            missing_locators=missing,
            orphan_locators=orphans,
            partition_mismatches=mismatches,
        )
        log = logger.info if report.is_consistent else logger.warning
        log(
            "order_reconciliation_completed",
            extra={
                "checked_orders": report.checked_orders,
                "duplicate_count": len(duplicates),
                "missing_locator_count": len(missing),
                "orphan_locator_count": len(orphans),
                "mismatch_count": len(mismatches),
            },
        )
        return report
