"""
ORM guards for the append-only activity trail.

ActivityLogEntry rows are never updated.  They may be deleted only while
the session carries an admin deletion grant, which ActivityLogService
issues after checking the actor's role.  Both rules are enforced with
mapper ``before_update``/``before_delete`` listeners, so a violating
flush raises ImmutabilityViolationError and the transaction rolls back.

Bulk ``delete()`` statements skip mapper events; the service therefore
deletes entries one object at a time through ``session.delete``.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from lifecycle_kernel.exceptions import ImmutabilityViolationError
from lifecycle_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_GRANT = "activity_log_delete_grant"


@contextmanager
def admin_deletion_grant(session: Session) -> Generator[None, None, None]:
    """Permit activity log deletes on ``session`` inside the block."""
    before = session.info.get(_GRANT, False)
    session.info[_GRANT] = True
    try:
        yield
    finally:
        session.info[_GRANT] = before


def _blocked(target, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "activity_log_write_blocked",
        extra={"log_id": target.log_id, "db_operation": operation},
    )
    return ImmutabilityViolationError("ActivityLogEntry", target.log_id, reason)


def _before_update(mapper, connection, target):
    raise _blocked(target, "UPDATE", "activity log entries cannot be modified")


def _before_delete(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.info.get(_GRANT):
        return
    raise _blocked(target, "DELETE", "activity log entries may only be deleted by an admin")


_LISTENERS = (
    ("before_update", _before_update),
    ("before_delete", _before_delete),
)


def register_immutability_listeners() -> None:
    """Install the guards (safe to call more than once)."""
    from lifecycle_kernel.models.activity_log import ActivityLogEntry

    for name, listener in _LISTENERS:
        if not event.contains(ActivityLogEntry, name, listener):
            event.listen(ActivityLogEntry, name, listener)


def unregister_immutability_listeners() -> None:
    """Remove the guards.  Tests that need raw access only."""
    from lifecycle_kernel.models.activity_log import ActivityLogEntry

    for name, listener in _LISTENERS:
        if event.contains(ActivityLogEntry, name, listener):
            event.remove(ActivityLogEntry, name, listener)
