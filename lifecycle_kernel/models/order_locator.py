"""
Module: lifecycle_kernel.models.order_locator
Responsibility: One row per live order naming the lifecycle partition that
    currently holds it.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - order_id is unique: an order is in exactly one partition at any
      instant.  A transition moves the document and the locator in the same
      transaction, so a crash cannot leave a duplicate or lose the order.
    - version is the per-order optimistic-concurrency token.  Two
      transitions racing on the same order cannot both commit.
"""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lifecycle_kernel.db.base import TrackedBase


class OrderLocator(TrackedBase):
    """Current partition of a live order."""

    __tablename__ = "order_locators"

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_order_locator"),
    )

    order_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )

    partition: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<OrderLocator {self.order_id} in {self.partition} v{self.version}>"
