"""
lifecycle_services.kernel_services -- Per-transaction container for kernel services.

Responsibility:
    Creates every kernel service exactly once for one session and wires
    them together.  No kernel service built here constructs another
    service internally; they all share this container's instances.

Architecture position:
    Services -- orchestration over the kernel.  Only LifecycleEngine
    constructs this container, once per transaction attempt.

Invariants enforced:
    - Single-instance lifecycle: one DocumentStore, IdentifierService and
      ActivityLogService per transaction, so identifier counters and the
      activity trail observe one consistent session.
    - All services share the same Session, Clock and KeyedLock.

Failure modes:
    - None at construction; services raise from their own operations.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from lifecycle_kernel.domain.clock import Clock
from lifecycle_kernel.services.activity_log_service import ActivityLogService
from lifecycle_kernel.services.archival_service import ArchivalService
from lifecycle_kernel.services.document_store import DocumentStore
from lifecycle_kernel.services.identifier_service import IdentifierService
from lifecycle_kernel.services.inventory_ledger import InventoryLedger
from lifecycle_kernel.services.notification_service import NotificationService
from lifecycle_kernel.services.order_lifecycle_service import OrderLifecycleService
from lifecycle_kernel.services.restoration_service import RestorationService
from lifecycle_kernel.services.return_service import ReturnService
from lifecycle_kernel.utils.keyed_lock import KeyedLock
from lifecycle_services.reconciliation_service import ReconciliationService


class KernelServices:
    """Kernel services bound to one session.

    Contract:
        Receives a Session, Clock and KeyedLock; exposes each kernel
        service as a public attribute.

    Non-goals:
        - Does NOT manage transaction boundaries.
        - Does NOT own the Session lifecycle (no commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        locks: KeyedLock,
        token_source: Callable[[int], int] | None = None,
    ) -> None:
        self.session = session

        # Foundational services
        self.store = DocumentStore(session)
        self.identifiers = IdentifierService(session, clock, token_source)
        self.activity = ActivityLogService(session, clock, self.identifiers)

        # Side-effect sinks
        self.ledger = InventoryLedger(session, self.store, locks)
        self.notifications = NotificationService(
            session, clock, self.store, self.identifiers
        )

        # Workflows
        self.orders = OrderLifecycleService(
            session,
            clock,
            locks,
            self.store,
            self.identifiers,
            self.activity,
            self.ledger,
            self.notifications,
        )
        self.returns = ReturnService(
            session,
            clock,
            locks,
            self.store,
            self.identifiers,
            self.activity,
            self.ledger,
        )

        # Archival
        self.archival = ArchivalService(
            session, clock, locks, self.store, self.identifiers, self.activity
        )
        self.restoration = RestorationService(
            session, clock, locks, self.store, self.identifiers, self.activity
        )

        # Read-only checks
        self.reconciliation = ReconciliationService(session, self.store)
