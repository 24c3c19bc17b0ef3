"""
Module: lifecycle_kernel.models.identifier_counter
Responsibility: Named counter rows backing IdentifierService.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - name is unique; current_value only grows.  The row is locked
      (SELECT ... FOR UPDATE) for every allocation.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from lifecycle_kernel.db.base import Base


class IdentifierCounter(Base):
    """
    Identifier counter table.

    Each row is one named counter (one per id prefix: "LOG", "TS", ...).
    """

    __tablename__ = "identifier_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
