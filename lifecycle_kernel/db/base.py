"""
Declarative bases for the kernel's ORM models.

Every table gets an integer surrogate key.  Business identity (collection
plus document id, order id, log id, counter name, restore key) lives in
its own unique columns, so moving a document between partitions never
touches a surrogate key that another row could reference.

Nothing under ``lifecycle_kernel.db`` imports models, services or domain
code; models import from here.
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Root of the model hierarchy; all datetimes are stored timezone-aware."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
    }

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TrackedBase(Base):
    """Adds server-maintained ``created_at``/``updated_at`` columns."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
