"""
Module: lifecycle_kernel.models.activity_log
Responsibility: ORM persistence for the console's activity trail (who did
    what to which entity, and when).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Entries are never updated (ORM listener in db/immutability.py).
    - log_id is unique and minted by IdentifierService.
    - seq is monotonically increasing per database, giving a total order
      even when several entries share a timestamp.

Failure modes:
    - ImmutabilityViolationError on any UPDATE attempt.

Audit relevance:
    Every order transition, archival, restoration and return decision
    appends one entry.  Admin archival snapshots the entries matching the
    admin's email into the archive record.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from lifecycle_kernel.db.base import Base


class ActivityLogEntry(Base):
    """
    Immutable activity log entry.

    Contract:
        Rows are append-only.  Only the admin-only deletion operations in
        ActivityLogService may remove them; nothing may change them.
    """

    __tablename__ = "activity_logs"

    __table_args__ = (
        Index("idx_activity_email", "user_email"),
        Index("idx_activity_timestamp", "timestamp"),
    )

    log_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    action: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    # Actor
    user_email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
    )

    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # Subject references
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    product_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Set on entries written as part of an admin removal
    archived_admin_remove_id: Mapped[str | None] = mapped_column(
        String(16),
        nullable=True,
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def to_payload(self) -> dict[str, Any]:
        """Document-shaped view used in archive bundles and API output."""
        payload: dict[str, Any] = {
            "logId": self.log_id,
            "action": self.action,
            "userEmail": self.user_email,
            "role": self.role,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.user_id is not None:
            payload["userId"] = self.user_id
        if self.product_id is not None:
            payload["productId"] = self.product_id
        if self.order_id is not None:
            payload["orderId"] = self.order_id
        if self.archived_admin_remove_id is not None:
            payload["archivedAdminRemoveId"] = self.archived_admin_remove_id
        return payload

    def __repr__(self) -> str:
        return f"<ActivityLogEntry {self.log_id}: {self.action}>"
