"""
Module: lifecycle_kernel.models.document
Responsibility: ORM persistence for partitioned JSON documents -- the
    relational stand-in for the console's document-store collections
    ("orders", "toShip", "products", "usersArchive", ...).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (collection, doc_id) is unique (uq_document_slot): a partition holds
      at most one document per id.
    - version is an optimistic-concurrency token.  SQLAlchemy adds
      ``WHERE version = :old`` to every UPDATE/DELETE and raises
      StaleDataError when another transaction moved it first.
    - user_id / order_id mirror payload["userId"] / payload["orderId"] so
      dependent-row gathering and uniqueness checks are indexed lookups.
      remove_id / original_doc_id do the same for the archive keys
      payload["removeId"] and payload["originalDocId"].

Failure modes:
    - IntegrityError on a duplicate (collection, doc_id) insert.
    - StaleDataError on a lost compare-and-swap.
"""

from typing import Any

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lifecycle_kernel.db.base import TrackedBase


class Document(TrackedBase):
    """
    One JSON document inside one logical partition.

    Contract:
        The payload is replaced wholesale on every write (never mutated in
        place) so that the version token always advances.

    Guarantees:
        - ``collection`` + ``doc_id`` identify the document.
        - ``version`` starts at 1 and increases by one per UPDATE.
    """

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_document_slot"),
        Index("idx_document_user", "collection", "user_id"),
        Index("idx_document_order", "order_id"),
        Index("idx_document_remove_id", "collection", "remove_id"),
        Index("idx_document_original", "collection", "original_doc_id"),
    )

    collection: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    doc_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )

    user_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )

    order_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )

    remove_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )

    original_doc_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )

    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id} v{self.version}>"
