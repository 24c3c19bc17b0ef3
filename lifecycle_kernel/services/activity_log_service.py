"""
ActivityLogService -- append-only trail of console actions.

Responsibility:
    Appends ActivityLogEntry rows for every order transition, archival,
    restoration and return decision, serves the reads the console needs,
    and performs the admin-only deletions.

Architecture position:
    Kernel > Services -- imperative shell.  Called by every mutating
    kernel service and by the engine facade.

Invariants enforced:
    - log_id and seq come from IdentifierService (locked counter row), so
      entries are totally ordered and never collide.
    - Entries are never updated (ORM listener).
    - Deletion requires an admin actor and runs under an explicit deletion
      grant; anything else trips the immutability listener.

Failure modes:
    - ActorNotAuthorizedError: non-admin deletion attempt.
    - DocumentNotFoundError: deleting an unknown log id.
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from lifecycle_kernel.db.immutability import admin_deletion_grant
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.domain.dtos import Actor
from lifecycle_kernel.exceptions import ActorNotAuthorizedError, DocumentNotFoundError
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.models.activity_log import ActivityLogEntry
from lifecycle_kernel.services.base import BaseService
from lifecycle_kernel.services.identifier_service import IdentifierService

logger = get_logger("services.activity_log")

_SEQ_COUNTER = "activity_log_seq"


class ActivityLogService(BaseService):
    """
    Service for the activity trail.

    Contract:
        ``record`` appends exactly one entry per call.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        identifiers: IdentifierService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._identifiers = identifiers or IdentifierService(session, self._clock)

    def record(
        self,
        action: str,
        actor: Actor,
        *,
        user_id: str | None = None,
        product_id: str | None = None,
        order_id: str | None = None,
        archived_admin_remove_id: str | None = None,
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            log_id=self._identifiers.next_id(IdentifierService.ACTIVITY_LOG),
            seq=self._identifiers.next_value(_SEQ_COUNTER),
            action=action,
            user_email=actor.email,
            role=actor.role,
            user_id=user_id,
            product_id=product_id,
            order_id=order_id,
            archived_admin_remove_id=archived_admin_remove_id,
            timestamp=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "activity_recorded",
            extra={
                "log_id": entry.log_id,
                "action": action,
                "user_email": actor.email,
            },
        )
        return entry

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def list_for_email(self, email: str) -> list[ActivityLogEntry]:
        return list(
            self.session.execute(
                select(ActivityLogEntry)
                .where(ActivityLogEntry.user_email == email)
                .order_by(ActivityLogEntry.seq)
            ).scalars()
        )

    def list_recent(self, limit: int = 50) -> list[ActivityLogEntry]:
        """Newest first."""
        return list(
            self.session.execute(
                select(ActivityLogEntry)
                .order_by(ActivityLogEntry.seq.desc())
                .limit(limit)
            ).scalars()
        )

    def list_for_order(self, order_id: str) -> list[ActivityLogEntry]:
        return list(
            self.session.execute(
                select(ActivityLogEntry)
                .where(ActivityLogEntry.order_id == order_id)
                .order_by(ActivityLogEntry.seq)
            ).scalars()
        )

    # -----------------------------------------------------------------
    # Admin-only deletion
    # -----------------------------------------------------------------

    def _require_admin(self, actor: Actor, operation: str) -> None:
        if not actor.is_admin:
            logger.warning(
                "activity_delete_denied",
                extra={"actor_email": actor.email, "role": actor.role},
            )
            raise ActorNotAuthorizedError(actor.email, actor.role, operation)

    def delete_log(self, log_id: str, actor: Actor) -> None:
        self.delete_logs([log_id], actor)

    def delete_logs(self, log_ids: Iterable[str], actor: Actor) -> int:
        """
        Delete the named entries.

        Raises:
            ActorNotAuthorizedError: ``actor`` is not an admin.
            DocumentNotFoundError: Any id is unknown (nothing is deleted).
        """
        self._require_admin(actor, "delete activity logs")
        wanted = list(dict.fromkeys(log_ids))
        if not wanted:
            return 0

        entries = list(
            self.session.execute(
                select(ActivityLogEntry).where(ActivityLogEntry.log_id.in_(wanted))
            ).scalars()
        )
        found = {e.log_id for e in entries}
        for log_id in wanted:
            if log_id not in found:
                raise DocumentNotFoundError("activity_logs", log_id)

        return self._delete(entries, actor)

    def clear_logs(self, actor: Actor) -> int:
        """Delete every entry.  Admin only."""
        self._require_admin(actor, "clear activity logs")
        entries = list(self.session.execute(select(ActivityLogEntry)).scalars())
        return self._delete(entries, actor)

    def _delete(self, entries: list[ActivityLogEntry], actor: Actor) -> int:
        with admin_deletion_grant(self.session):
            for entry in entries:
                self.session.delete(entry)
            self.session.flush()

        logger.info(
            "activity_logs_deleted",
            extra={"count": len(entries), "actor_email": actor.email},
        )
        return len(entries)
