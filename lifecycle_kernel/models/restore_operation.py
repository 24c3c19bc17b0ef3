"""
Module: lifecycle_kernel.models.restore_operation
Responsibility: Externally observable state of restore attempts, one row
    per restorable entity key ("user:U1", "archive:ARC-...").
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - entity_key is unique.
    - At most one attempt per key is RESTORING.  The transition into
      RESTORING is a conditional UPDATE (status <> 'restoring', or a
      Restoring mark older than the stale limit), committed before the
      restore work starts.  attempts numbers each entry into RESTORING.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from lifecycle_kernel.db.base import TrackedBase


class RestoreStatus(str, Enum):
    """Restore flow states.

    Contract: Archived -> Restoring -> (Restored | Failed).  A Failed
    attempt may re-enter Restoring; Restored may too (the restore itself
    then reports NotFound).
    """

    RESTORING = "restoring"
    RESTORED = "restored"
    FAILED = "failed"


class RestoreOperation(TrackedBase):
    """Restore guard row for one entity key."""

    __tablename__ = "restore_operations"

    entity_key: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        unique=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_error: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    @property
    def status_enum(self) -> RestoreStatus:
        return RestoreStatus(self.status)

    def __repr__(self) -> str:
        return f"<RestoreOperation {self.entity_key} {self.status}>"
