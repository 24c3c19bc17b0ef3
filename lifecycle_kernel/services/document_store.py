"""
DocumentStore -- partition persistence for JSON documents and order locators.

Responsibility:
    The single gateway through which kernel services read and write
    partition documents (``documents`` table) and order locators
    (``order_locators`` table).  Translates storage-level failures into the
    kernel's typed exceptions.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Used by every
    lifecycle, inventory, archival and restoration service.

Invariants enforced:
    - Payloads are deep-copied on the way in and on the way out.  A caller
      never holds a reference into a persisted payload, and every write
      replaces the payload wholesale so the version token advances.
    - (collection, doc_id) is unique; inserting over an occupied slot
      raises DocumentExistsError.
    - An orderId is claimed by at most one locator; claiming a live order
      raises DuplicateOrderError.
    - Lost compare-and-swap races surface as OptimisticLockError.

Failure modes:
    - DocumentNotFoundError from ``require``.
    - DocumentExistsError / DuplicateOrderError on occupied slots.
    - OptimisticLockError when a concurrent transaction moved a version.
"""

import copy
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.exceptions import (
    DocumentExistsError,
    DocumentNotFoundError,
    DuplicateOrderError,
    OptimisticLockError,
)
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.models.document import Document
from lifecycle_kernel.models.order_locator import OrderLocator
from lifecycle_kernel.services.base import BaseService

logger = get_logger("services.document_store")


def payload_of(document: Document) -> dict[str, Any]:
    """Detached deep copy of a document's payload."""
    return copy.deepcopy(document.payload)


def _lookup_value(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _lookup_columns(payload: dict[str, Any]) -> dict[str, str | None]:
    return {
        "user_id": _lookup_value(payload, "userId"),
        "order_id": _lookup_value(payload, "orderId"),
        "remove_id": _lookup_value(payload, partitions.REMOVE_ID),
        "original_doc_id": _lookup_value(payload, partitions.ORIGINAL_DOC_ID),
    }


class DocumentStore(BaseService):
    """
    Gateway for partition documents.

    Contract:
        All methods flush; none commit.  ``for_update=True`` reads take a
        row lock (``SELECT ... FOR UPDATE``) where the backend supports it.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def get(
        self,
        collection: str,
        doc_id: str,
        *,
        for_update: bool = False,
    ) -> Document | None:
        stmt = select(Document).where(
            Document.collection == collection,
            Document.doc_id == doc_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def require(
        self,
        collection: str,
        doc_id: str,
        *,
        for_update: bool = False,
    ) -> Document:
        document = self.get(collection, doc_id, for_update=for_update)
        if document is None:
            raise DocumentNotFoundError(collection, doc_id)
        return document

    def exists(self, collection: str, doc_id: str) -> bool:
        return self.session.execute(
            select(Document.id).where(
                Document.collection == collection,
                Document.doc_id == doc_id,
            )
        ).first() is not None

    def list_collection(self, collection: str) -> list[Document]:
        return list(
            self.session.execute(
                select(Document)
                .where(Document.collection == collection)
                .order_by(Document.doc_id)
            ).scalars()
        )

    def find_by_user(
        self,
        collection: str,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> list[Document]:
        stmt = (
            select(Document)
            .where(Document.collection == collection, Document.user_id == user_id)
            .order_by(Document.doc_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars())

    def find_by_order(self, collection: str, order_id: str) -> list[Document]:
        return list(
            self.session.execute(
                select(Document)
                .where(Document.collection == collection, Document.order_id == order_id)
                .order_by(Document.doc_id)
            ).scalars()
        )

    def find_by_remove_id(self, collection: str, remove_id: str) -> Document | None:
        return self.session.execute(
            select(Document)
            .where(Document.collection == collection, Document.remove_id == remove_id)
            .order_by(Document.doc_id)
            .limit(1)
        ).scalar_one_or_none()

    def remove_id_taken(self, collection: str, remove_id: str) -> bool:
        return self.session.execute(
            select(Document.id).where(
                Document.collection == collection,
                Document.remove_id == remove_id,
            )
        ).first() is not None

    def find_by_original(
        self,
        collection: str,
        original_doc_id: str,
        *,
        for_update: bool = False,
    ) -> list[Document]:
        """Archive records of ``collection`` made from ``original_doc_id``."""
        stmt = (
            select(Document)
            .where(
                Document.collection == collection,
                Document.original_doc_id == original_doc_id,
            )
            .order_by(Document.doc_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars())

    def find_in(
        self,
        collections: Iterable[str],
        doc_id: str,
    ) -> list[Document]:
        """Every document with ``doc_id`` across ``collections``."""
        return list(
            self.session.execute(
                select(Document)
                .where(
                    Document.collection.in_(list(collections)),
                    Document.doc_id == doc_id,
                )
                .order_by(Document.collection)
            ).scalars()
        )

    def count(self, collection: str) -> int:
        return self.session.execute(
            select(func.count(Document.id)).where(Document.collection == collection)
        ).scalar_one()

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def insert(
        self,
        collection: str,
        doc_id: str,
        payload: dict[str, Any],
    ) -> Document:
        """
        Insert a new document.

        Raises:
            DocumentExistsError: The slot is already occupied.
        """
        if self.exists(collection, doc_id):
            raise DocumentExistsError(collection, doc_id)

        body = copy.deepcopy(payload)
        document = Document(
            collection=collection,
            doc_id=doc_id,
            payload=body,
            **_lookup_columns(body),
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(document)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DocumentExistsError(collection, doc_id)

        logger.debug(
            "document_inserted",
            extra={"collection": collection, "doc_id": doc_id},
        )
        return document

    def replace(self, document: Document, payload: dict[str, Any]) -> Document:
        """Replace a document's payload (version compare-and-swap)."""
        body = copy.deepcopy(payload)
        document.payload = body
        for column, value in _lookup_columns(body).items():
            setattr(document, column, value)
        self._flush(document.collection, document.doc_id)
        return document

    def delete(self, document: Document) -> None:
        """Delete a document (version compare-and-swap)."""
        collection, doc_id = document.collection, document.doc_id
        self.session.delete(document)
        self._flush(collection, doc_id)
        logger.debug(
            "document_deleted",
            extra={"collection": collection, "doc_id": doc_id},
        )

    def _flush(self, entity_type: str, entity_id: str) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError(entity_type, entity_id) from exc

    # -----------------------------------------------------------------
    # Order locators
    # -----------------------------------------------------------------

    def locate_order(
        self,
        order_id: str,
        *,
        for_update: bool = False,
    ) -> OrderLocator | None:
        stmt = select(OrderLocator).where(OrderLocator.order_id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def claim_order(self, order_id: str, partition: str) -> OrderLocator:
        """
        Register ``order_id`` as live in ``partition``.

        Raises:
            DuplicateOrderError: The order is already live somewhere.
        """
        existing = self.locate_order(order_id)
        if existing is not None:
            raise DuplicateOrderError(order_id, existing.partition)

        locator = OrderLocator(order_id=order_id, partition=partition)
        savepoint = self.session.begin_nested()
        try:
            self.session.add(locator)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            current = self.locate_order(order_id)
            raise DuplicateOrderError(
                order_id, current.partition if current else "unknown"
            )
        return locator

    def move_order(self, locator: OrderLocator, partition: str) -> None:
        locator.partition = partition
        self._flush("OrderLocator", locator.order_id)

    def release_order(self, locator: OrderLocator) -> None:
        order_id = locator.order_id
        self.session.delete(locator)
        self._flush("OrderLocator", order_id)

    def list_locators(self) -> list[OrderLocator]:
        return list(
            self.session.execute(
                select(OrderLocator).order_by(OrderLocator.order_id)
            ).scalars()
        )
