"""
RestoreCoordinator -- guards restores with an externally visible state.

Responsibility:
    Drives one entity through ``Archived -> Restoring -> (Restored |
    Failed)`` around the actual restore work, using one RestoreOperation
    row per entity key.

Architecture position:
    Services -- orchestration.  Owns three short transactions per restore:
    mark Restoring (committed before any restore work), the restore
    itself (supplied by the caller), and the final mark.

Invariants enforced:
    - At most one attempt per entity key is Restoring.  The transition is
      a conditional UPDATE (``status <> 'restoring'``) whose row count is
      checked, or the first INSERT for a new key; either way it commits
      before the restore starts, so a concurrent caller sees it.
    - A failed restore is marked Failed with the error text and may be
      attempted again.
    - A Restoring mark whose ``started_at`` is older than
      ``stale_after_seconds`` belongs to a worker that died before
      finishing; the next caller takes it over.  Final marks match the
      attempt number, so a late finish from the abandoned attempt
      cannot overwrite its successor.

Failure modes:
    - RestoreInProgressError: another attempt holds the key.
    - Whatever the restore raises, after the Failed mark is committed.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import TypeVar

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from lifecycle_kernel.db.engine import session_scope
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.exceptions import RestoreInProgressError
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.models.restore_operation import RestoreOperation, RestoreStatus
from lifecycle_kernel.utils.retry import RetryPolicy, run_with_retry

logger = get_logger("services.restore_coordinator")

T = TypeVar("T")

_MAX_ERROR_LENGTH = 1000


class RestoreCoordinator:
    """Restore guard keyed by entity.

    Contract:
        ``run(entity_key, restore)`` calls ``restore`` only after this
        process has committed the key as Restoring, and returns its result.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] | None = None,
        stale_after_seconds: float = 300.0,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._stale_after_seconds = stale_after_seconds

    def run(self, entity_key: str, restore: Callable[[], T]) -> T:
        attempt = self._with_retry(
            "mark_restoring", lambda: self._mark_restoring(entity_key)
        )
        try:
            result = restore()
        except Exception as exc:
            self._with_retry(
                "mark_restore_failed",
                lambda: self._finish(entity_key, attempt, RestoreStatus.FAILED, exc),
            )
            logger.warning(
                "restore_failed",
                extra={
                    "entity_key": entity_key,
                    "error_type": type(exc).__name__,
                },
            )
            raise
        self._with_retry(
            "mark_restored",
            lambda: self._finish(entity_key, attempt, RestoreStatus.RESTORED),
        )
        logger.info("restore_completed", extra={"entity_key": entity_key})
        return result

    def status_of(self, entity_key: str) -> RestoreStatus | None:
        with session_scope(self._session_factory) as session:
            status = session.execute(
                select(RestoreOperation.status).where(
                    RestoreOperation.entity_key == entity_key
                )
            ).scalar_one_or_none()
        return RestoreStatus(status) if status is not None else None

    def _with_retry(self, operation: str, work: Callable[[], T]) -> T:
        if self._sleep is None:
            return run_with_retry(operation, work, self._retry)
        return run_with_retry(operation, work, self._retry, self._sleep)

    def _mark_restoring(self, entity_key: str) -> int:
        """Commit ``entity_key`` as Restoring; returns the attempt number."""
        now = self._clock.now()
        with session_scope(self._session_factory) as session:
            existing = session.execute(
                select(RestoreOperation.status, RestoreOperation.started_at).where(
                    RestoreOperation.entity_key == entity_key
                )
            ).first()

            if existing is None:
                savepoint = session.begin_nested()
                try:
                    session.add(
                        RestoreOperation(
                            entity_key=entity_key,
                            status=RestoreStatus.RESTORING.value,
                            attempts=1,
                            started_at=now,
                        )
                    )
                    session.flush()
                    savepoint.commit()
                except IntegrityError:
                    savepoint.rollback()
                    raise RestoreInProgressError(entity_key)
                attempt = 1
            else:
                cutoff = now - timedelta(seconds=self._stale_after_seconds)
                result = session.execute(
                    update(RestoreOperation)
                    .where(
                        RestoreOperation.entity_key == entity_key,
                        or_(
                            RestoreOperation.status != RestoreStatus.RESTORING.value,
                            RestoreOperation.started_at.is_(None),
                            RestoreOperation.started_at < cutoff,
                        ),
                    )
                    .values(
                        status=RestoreStatus.RESTORING.value,
                        attempts=RestoreOperation.attempts + 1,
                        started_at=now,
                        finished_at=None,
                        last_error=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    logger.warning(
                        "restore_rejected_in_progress",
                        extra={"entity_key": entity_key},
                    )
                    raise RestoreInProgressError(entity_key)
                if existing.status == RestoreStatus.RESTORING.value:
                    logger.warning(
                        "restore_stale_mark_reclaimed",
                        extra={
                            "entity_key": entity_key,
                            "stale_started_at": existing.started_at,
                            "stale_after_seconds": self._stale_after_seconds,
                        },
                    )
                attempt = session.execute(
                    select(RestoreOperation.attempts).where(
                        RestoreOperation.entity_key == entity_key
                    )
                ).scalar_one()

        logger.info(
            "restore_marked_restoring",
            extra={"entity_key": entity_key, "attempt": attempt},
        )
        return attempt

    def _finish(
        self,
        entity_key: str,
        attempt: int,
        status: RestoreStatus,
        error: BaseException | None = None,
    ) -> None:
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(RestoreOperation)
                .where(
                    RestoreOperation.entity_key == entity_key,
                    RestoreOperation.status == RestoreStatus.RESTORING.value,
                    RestoreOperation.attempts == attempt,
                )
                .values(
                    status=status.value,
                    finished_at=self._clock.now(),
                    last_error=(
                        f"{type(error).__name__}: {error}"[:_MAX_ERROR_LENGTH]
                        if error is not None
                        else None
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            superseded = result.rowcount != 1
        if superseded:
            # a later attempt reclaimed the key; its outcome stands
            logger.warning(
                "restore_outcome_superseded",
                extra={"entity_key": entity_key, "attempt": attempt, "status": status.value},
            )
