"""
lifecycle_services.lifecycle_engine -- Operation surface of the engine.

Responsibility:
    Exposes one method per external operation (pack, ship, archive,
    restore, ...).  Each call runs as one database transaction with the
    kernel services wired onto that transaction's session, retried on
    transient storage errors, and logged under a bound LogContext.

Architecture position:
    Services -- top of the stack.  The only component that reads
    ``lifecycle_config``; policy values travel down to the kernel as
    plain arguments.

Invariants enforced:
    - One operation, one transaction: every partition move, stock change,
      log append and notification of an operation commits or rolls back
      together (``session_scope``).
    - On SQLite the transaction takes the database write lock before any
      in-process key lock, so the two lock layers are always acquired in
      the same order.
    - Restores go through RestoreCoordinator, so two restores of one
      entity never overlap.
    - Only transient errors are retried; business-rule errors surface
      unchanged on the first attempt.

Failure modes:
    - Every LifecycleKernelError raised by the kernel.
    - PartialFailureError from ``pack_orders_bulk(raise_on_failure=True)``.
    - OperationalError once the retry budget is spent (single-entity
      operations; bulk packing reports it per item instead).

Usage:
    from lifecycle_services import LifecycleEngine
    from lifecycle_kernel.domain import Actor

    engine = LifecycleEngine()
    admin = Actor("ops@shop.example", "Admin")
    engine.pack_order("ORD-1", admin)
    receipt = engine.archive_user("U1", admin)
    engine.restore_user_with_all_data("U1", admin)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from lifecycle_config import EngineConfig, get_active_config
from lifecycle_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from lifecycle_kernel.db.immutability import register_immutability_listeners
from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.domain.dtos import (
    SYSTEM_ACTOR,
    Actor,
    ArchiveReceipt,
    BulkItemResult,
    BulkResult,
    RestorationReport,
    StockLevel,
)
from lifecycle_kernel.domain.order_workflow import OrderAction, ReturnDecision
from lifecycle_kernel.exceptions import LifecycleKernelError, PartialFailureError
from lifecycle_kernel.logging_config import LogContext, configure_logging, get_logger
from lifecycle_kernel.models.restore_operation import RestoreStatus
from lifecycle_kernel.services.archival_service import UserArchiveMode
from lifecycle_kernel.services.document_store import payload_of
from lifecycle_kernel.services.inventory_ledger import MissingProductPolicy
from lifecycle_kernel.utils.keyed_lock import KeyedLock
from lifecycle_kernel.utils.retry import RetryPolicy, is_transient_error, run_with_retry
from lifecycle_services.kernel_services import KernelServices
from lifecycle_services.reconciliation_service import ReconciliationReport
from lifecycle_services.restore_coordinator import RestoreCoordinator

logger = get_logger("services.engine")

T = TypeVar("T")

BULK_PACK = "pack_orders_bulk"

# error_code of a bulk item whose storage errors outlasted the retry budget
STORAGE_UNAVAILABLE = "storage_unavailable"


class LifecycleEngine:
    """Facade running each operation in its own retried transaction.

    Contract:
        Every public method is one top-level operation.  Return values
        are plain payload dicts or frozen DTOs, never ORM objects.

    Guarantees:
        - The kernel services of one call share one session.
        - All calls share this engine's Clock and KeyedLock.

    Non-goals:
        - Does NOT authenticate actors; callers pass a resolved Actor.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        locks: KeyedLock | None = None,
        token_source: Callable[[int], int] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config if config is not None else get_active_config()
        configure_logging(level=logging.getLevelName(self._config.log_level))

        self._owns_database = session_factory is None
        if session_factory is None:
            db = self._config.database
            init_engine_from_url(
                db.url,
                echo=db.echo,
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
            )
            create_tables()
            session_factory = get_session_factory()
        register_immutability_listeners()

        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLock()
        self._token_source = token_source
        self._sleep = sleep
        self._retry = RetryPolicy(
            max_attempts=self._config.retry.max_attempts,
            base_delay_seconds=self._config.retry.base_delay_seconds,
            max_delay_seconds=self._config.retry.max_delay_seconds,
        )
        self._restores = RestoreCoordinator(
            session_factory,
            self._clock,
            self._retry,
            sleep,
            stale_after_seconds=self._config.restore.stale_after_seconds,
        )

        self._missing_product = MissingProductPolicy(
            self._config.stock_restoration.on_missing_product
        )
        self._user_archive_mode = UserArchiveMode(self._config.user_archive.mode)

        logger.info(
            "lifecycle_engine_started",
            extra={
                "config_id": self._config.config_id,
                "config_version": self._config.version,
                "owns_database": self._owns_database,
            },
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    def dispose(self) -> None:
        """Release the connection pool if this engine created it."""
        if self._owns_database:
            reset_engine()

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def _run(
        self,
        operation: str,
        work: Callable[[KernelServices], T],
        *,
        actor: Actor | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> T:
        def attempt() -> T:
            with session_scope(self._session_factory) as session:
                # BEGIN now; on SQLite this takes the write lock
                session.connection()
                services = KernelServices(
                    session, self._clock, self._locks, self._token_source
                )
                return work(services)

        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_email=actor.email if actor else None,
            actor_role=actor.role if actor else None,
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
        ):
            return run_with_retry(operation, attempt, self._retry, self._sleep)

    # -----------------------------------------------------------------
    # Orders
    # -----------------------------------------------------------------

    def place_order(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Register an order in ``orders`` (seeding; checkout lives elsewhere)."""
        return self._run(
            "place_order",
            lambda s: s.orders.place(payload),
            entity_type=partitions.ORDER_ENTITY,
            entity_id=str(payload.get("orderId")),
        )

    def pack_order(self, order_id: str, actor: Actor) -> dict[str, Any]:
        return self._run(
            "pack_order",
            lambda s: s.orders.pack(order_id, actor),
            actor=actor,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    def pack_orders_bulk(
        self,
        order_ids: Iterable[str],
        actor: Actor,
        *,
        batch_confirm: bool = False,
        raise_on_failure: bool = False,
    ) -> BulkResult:
        """
        Pack several orders, reporting each id's outcome.

        By default every id is its own transaction.  ``batch_confirm``
        packs all ids in one transaction with a savepoint per id, so the
        successful moves become visible together.

        A transient storage error that outlasts the retry budget is
        reported as a failed outcome with ``error_code`` STORAGE_UNAVAILABLE:
        for that id alone per-id, or for every id under ``batch_confirm``
        (whose single transaction then rolled back).

        Raises:
            PartialFailureError: ``raise_on_failure`` and an id failed.
        """
        ids = list(order_ids)
        if not ids:
            return BulkResult(operation=BULK_PACK, outcomes=())

        if batch_confirm:
            try:
                result = self._run(
                    BULK_PACK,
                    lambda s: s.orders.pack_many(ids, actor),
                    actor=actor,
                    entity_type=partitions.ORDER_ENTITY,
                )
            except Exception as exc:
                if not is_transient_error(exc):
                    raise
                # the batch transaction rolled back; nothing was packed
                result = BulkResult(
                    operation=BULK_PACK,
                    outcomes=tuple(_storage_failure(order_id, exc) for order_id in ids),
                )
        else:
            outcomes: list[BulkItemResult] = []
            for order_id in ids:
                try:
                    moved = self.pack_order(order_id, actor)
                except Exception as exc:
                    if is_transient_error(exc):
                        outcomes.append(_storage_failure(order_id, exc))
                        continue
                    if not isinstance(exc, LifecycleKernelError):
                        raise
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
                else:
                    outcomes.append(
                        BulkItemResult(item_id=order_id, success=True, payload=moved)
                    )
            result = BulkResult(operation=BULK_PACK, outcomes=tuple(outcomes))

        if raise_on_failure and result.failed:
            raise PartialFailureError(result.operation, list(result.outcomes))
        return result

    def ship_order(
        self,
        order_id: str,
        actor: Actor,
        item: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        return self._run(
            "ship_order",
            lambda s: s.orders.ship(order_id, actor, item),
            actor=actor,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    def receive_order(self, order_id: str, actor: Actor) -> dict[str, Any]:
        return self._run(
            "receive_order",
            lambda s: s.orders.receive(order_id, actor),
            actor=actor,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    def cancel_order(
        self,
        order_id: str,
        actor: Actor,
        reason: str | None = None,
    ) -> dict[str, Any]:
        return self._run(
            "cancel_order",
            lambda s: s.orders.cancel(
                order_id,
                actor,
                reason,
                restock=self._config.orders.restock_on_cancel,
                policy=self._missing_product,
            ),
            actor=actor,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    def transition_order(
        self,
        order_id: str,
        action: OrderAction | str,
        actor: Actor,
    ) -> dict[str, Any]:
        """Apply a workflow action by name (``pack``, ``ship``, ...)."""
        action_name = action.value if isinstance(action, OrderAction) else str(action)
        if action_name == OrderAction.CANCEL.value:
            return self.cancel_order(order_id, actor)
        return self._run(
            f"{action_name}_order",
            lambda s: s.orders.transition(order_id, action_name, actor),
            actor=actor,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    def remove_to_receive(self, order_id: str, actor: Actor) -> RestorationReport:
        return self.remove_order(order_id, actor, partitions.TO_RECEIVE)

    def remove_order(
        self,
        order_id: str,
        actor: Actor,
        partition: str,
    ) -> RestorationReport:
        return self._run(
            "remove_order",
            lambda s: s.orders.remove(order_id, actor, partition, self._missing_product),
            actor=actor,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    # -----------------------------------------------------------------
    # Returns
    # -----------------------------------------------------------------

    def request_return(
        self,
        order_id: str,
        actor: Actor,
        reason: str | None = None,
    ) -> dict[str, Any]:
        return self._run(
            "request_return",
            lambda s: s.returns.request_return(order_id, actor, reason),
            actor=actor,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    def resolve_return(
        self,
        request_id: str,
        decision: ReturnDecision | str,
        actor: Actor,
    ) -> dict[str, Any]:
        return self._run(
            "resolve_return",
            lambda s: s.returns.resolve_return(
                request_id,
                decision,
                actor,
                restock_on_approval=self._config.returns.restock_on_approval,
                policy=self._missing_product,
            ),
            actor=actor,
            entity_type="return_request",
            entity_id=request_id,
        )

    # -----------------------------------------------------------------
    # Inventory
    # -----------------------------------------------------------------

    def adjust_stock(self, product_id: str, size: str, delta: int) -> StockLevel:
        return self._run(
            "adjust_stock",
            lambda s: s.ledger.adjust_stock(product_id, size, delta),
            entity_type="product",
            entity_id=product_id,
        )

    # -----------------------------------------------------------------
    # Archival
    # -----------------------------------------------------------------

    def archive_user(self, user_id: str, actor: Actor) -> ArchiveReceipt:
        return self._run(
            "archive_user",
            lambda s: s.archival.archive_user(
                user_id,
                actor,
                mode=self._user_archive_mode,
                dependent_partitions=self._config.user_archive.dependent_partitions,
            ),
            actor=actor,
            entity_type="user",
            entity_id=user_id,
        )

    def archive_entity(
        self,
        entity_type: str,
        entity_id: str,
        actor: Actor,
    ) -> ArchiveReceipt:
        if entity_type == "user":
            return self.archive_user(entity_id, actor)
        return self._run(
            "archive_entity",
            lambda s: s.archival.archive_entity(entity_type, entity_id, actor),
            actor=actor,
            entity_type=entity_type,
            entity_id=entity_id,
        )

    # -----------------------------------------------------------------
    # Restoration
    # -----------------------------------------------------------------

    def restore_entity(
        self,
        archive_id: str,
        actor: Actor = SYSTEM_ACTOR,
    ) -> dict[str, Any]:
        """Restore by archive id or admin ``R-`` token."""
        return self._restores.run(
            f"archive:{archive_id}",
            lambda: self._run(
                "restore_entity",
                lambda s: s.restoration.restore_entity(archive_id, actor),
                actor=actor,
                entity_type="archive",
                entity_id=archive_id,
            ),
        )

    def restore_user_only(self, user_id: str, actor: Actor = SYSTEM_ACTOR) -> int:
        return self._restores.run(
            f"user:{user_id}",
            lambda: self._run(
                "restore_user_only",
                lambda s: s.restoration.restore_user_only(user_id, actor),
                actor=actor,
                entity_type="user",
                entity_id=user_id,
            ),
        )

    def restore_user_with_all_data(
        self,
        user_id: str,
        actor: Actor = SYSTEM_ACTOR,
    ) -> int:
        return self._restores.run(
            f"user:{user_id}",
            lambda: self._run(
                "restore_user_with_all_data",
                lambda s: s.restoration.restore_user_with_all_data(user_id, actor),
                actor=actor,
                entity_type="user",
                entity_id=user_id,
            ),
        )

    def restore_status(self, entity_key: str) -> RestoreStatus | None:
        """State of the restore guard for ``user:<id>`` or ``archive:<id>``."""
        return self._restores.status_of(entity_key)

    # -----------------------------------------------------------------
    # Activity log
    # -----------------------------------------------------------------

    def list_activity(
        self,
        email: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Entries for ``email`` (oldest first) or the newest ``limit`` entries."""

        def work(s: KernelServices) -> list[dict[str, Any]]:
            if email is not None:
                entries = s.activity.list_for_email(email)
            else:
                entries = s.activity.list_recent(limit)
            return [entry.to_payload() for entry in entries]

        return self._run("list_activity", work)

    def delete_activity_logs(self, log_ids: Iterable[str], actor: Actor) -> int:
        ids = list(log_ids)
        return self._run(
            "delete_activity_logs",
            lambda s: s.activity.delete_logs(ids, actor),
            actor=actor,
            entity_type="activity_log",
        )

    def clear_activity_logs(self, actor: Actor) -> int:
        return self._run(
            "clear_activity_logs",
            lambda s: s.activity.clear_logs(actor),
            actor=actor,
            entity_type="activity_log",
        )

    # -----------------------------------------------------------------
    # Reads and checks
    # -----------------------------------------------------------------

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        def work(s: KernelServices) -> dict[str, Any] | None:
            document = s.store.get(collection, doc_id)
            return payload_of(document) if document is not None else None

        return self._run("get_document", work)

    def list_documents(self, collection: str) -> dict[str, dict[str, Any]]:
        """Every document of ``collection`` keyed by document id."""
        return self._run(
            "list_documents",
            lambda s: {
                d.doc_id: payload_of(d) for d in s.store.list_collection(collection)
            },
        )

    def reconcile_orders(self) -> ReconciliationReport:
        return self._run(
            "reconcile_orders", lambda s: s.reconciliation.reconcile_orders()
        )


def _storage_failure(order_id: str, exc: BaseException) -> BulkItemResult:
    logger.error(
        "bulk_item_storage_failed",
        extra={"order_id": order_id, "error_type": type(exc).__name__},
    )
    return BulkItemResult(
        item_id=order_id,
        success=False,
        error_code=STORAGE_UNAVAILABLE,
        error_message=f"{type(exc).__name__}: {exc}",
    )
