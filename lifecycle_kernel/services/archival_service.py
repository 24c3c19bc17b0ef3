"""
ArchivalService -- moves entities and entity graphs into archive partitions.

Responsibility:
    Archives products, sellers, admins and order-stage records into their
    archive partitions, and archives users together with every row that
    references them.  Stamps provenance (who, when, from where) on every
    archive record so restoration needs no external lookup.

Architecture position:
    Kernel > Services -- imperative shell.  Called by LifecycleEngine.
    Depends on ActivityLogService and IdentifierService.

Invariants enforced:
    - Archive and delete happen in the caller's transaction: an entity is
      either live or archived, never both, never neither.
    - Original payloads may not use archive-only keys (ReservedFieldError),
      so stripping those keys on restore reproduces the original exactly.
    - Archiving an order releases its locator.
    - Admin removal tokens are unique among admin archives.

Failure modes:
    - UnknownEntityTypeError: no archive partition for the entity type.
    - DocumentNotFoundError / ProductNotFoundError / OrderNotFoundError:
      nothing live to archive.
    - ReservedFieldError: payload collides with archive metadata.

Audit relevance:
    Every archival appends one ActivityLogEntry.  Admin archival embeds
    the admin's activity trail as a point-in-time bundle and tags the
    removal entry with the admin's ``R-`` token.
"""

from enum import Enum
from typing import Any, Iterable

from sqlalchemy.orm import Session

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.domain.dtos import Actor, ArchiveReceipt
from lifecycle_kernel.exceptions import (
    DocumentNotFoundError,
    OrderNotFoundError,
    ProductNotFoundError,
    ReservedFieldError,
    UnknownEntityTypeError,
)
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.models.document import Document
from lifecycle_kernel.services.activity_log_service import ActivityLogService
from lifecycle_kernel.services.base import BaseService
from lifecycle_kernel.services.document_store import DocumentStore, payload_of
from lifecycle_kernel.services.identifier_service import IdentifierService
from lifecycle_kernel.utils.keyed_lock import KeyedLock

logger = get_logger("services.archival")

USER_ENTITY = "user"


class UserArchiveMode(str, Enum):
    """What happens to a user's dependent rows on archival."""

    MOVE = "move"
    SNAPSHOT = "snapshot"


def check_reserved(collection: str, doc_id: str, payload: dict[str, Any]) -> None:
    clash = sorted(partitions.RESERVED_ARCHIVE_FIELDS & payload.keys())
    if clash:
        raise ReservedFieldError(collection, doc_id, clash)


class ArchivalService(BaseService):
    """
    Service for archiving entities.

    Contract:
        Every archival returns an ArchiveReceipt whose ``archive_id``
        restores the entity.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: KeyedLock | None = None,
        store: DocumentStore | None = None,
        identifiers: IdentifierService | None = None,
        activity: ActivityLogService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLock()
        self._store = store or DocumentStore(session)
        self._identifiers = identifiers or IdentifierService(session, self._clock)
        self._activity = activity or ActivityLogService(
            session, self._clock, self._identifiers
        )

    # -----------------------------------------------------------------
    # Simple entities
    # -----------------------------------------------------------------

    def archive_entity(
        self,
        entity_type: str,
        entity_id: str,
        actor: Actor,
        **user_options: Any,
    ) -> ArchiveReceipt:
        """
        Archive one entity.

        ``entity_type`` is ``product``, ``seller``, ``admin``, ``order`` or
        ``user`` (which delegates to ``archive_user``).

        Raises:
            UnknownEntityTypeError: Unsupported ``entity_type``.
        """
        if entity_type == USER_ENTITY:
            return self.archive_user(entity_id, actor, **user_options)
        if entity_type == partitions.ORDER_ENTITY:
            return self._archive_order(entity_id, actor)
        if entity_type not in partitions.ENTITY_ARCHIVES:
            raise UnknownEntityTypeError(entity_type)

        live, archive = partitions.ENTITY_ARCHIVES[entity_type]
        with self._locks.hold(f"{entity_type}:{entity_id}"):
            document = self._store.get(live, entity_id, for_update=True)
            if document is None:
                if entity_type == "product":
                    raise ProductNotFoundError(entity_id)
                raise DocumentNotFoundError(live, entity_id)

            remove_token = None
            label = entity_id
            extra: dict[str, Any] = {}
            if entity_type == "admin":
                remove_token = self._identifiers.new_remove_token(self._token_taken)
                extra[partitions.REMOVE_ID] = remove_token
                email = document.payload.get("email")
                label = email or entity_id
                extra[partitions.ACTIVITY_LOGS] = (
                    [e.to_payload() for e in self._activity.list_for_email(email)]
                    if email
                    else []
                )

            archive_id = self._archive_document(document, archive, actor, extra)

            if entity_type == "admin":
                self._activity.record(
                    f"Archived admin {label} ({remove_token})",
                    actor,
                    archived_admin_remove_id=remove_token,
                )
            else:
                self._activity.record(
                    f"Archived {entity_type} ({entity_id})",
                    actor,
                    product_id=entity_id if entity_type == "product" else None,
                )

        logger.info(
            "entity_archived",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "archive_id": archive_id,
                "archive_collection": archive,
            },
        )
        return ArchiveReceipt(
            archive_id=archive_id,
            archive_collection=archive,
            entity_type=entity_type,
            entity_id=entity_id,
            remove_token=remove_token,
        )

    def _archive_order(self, order_id: str, actor: Actor) -> ArchiveReceipt:
        with self._locks.hold(f"order:{order_id}"):
            locator = self._store.locate_order(order_id, for_update=True)
            if locator is None:
                raise OrderNotFoundError(order_id)
            source = locator.partition
            document = self._store.get(source, order_id, for_update=True)
            if document is None:
                raise OrderNotFoundError(order_id, source)

            user_id = document.user_id
            archive = partitions.archive_partition_for(source)
            archive_id = self._archive_document(document, archive, actor)
            self._store.release_order(locator)

            self._activity.record(
                f"Archived order ({order_id})",
                actor,
                order_id=order_id,
                user_id=user_id,
            )

        logger.info(
            "entity_archived",
            extra={
                "entity_type": partitions.ORDER_ENTITY,
                "entity_id": order_id,
                "archive_id": archive_id,
                "archive_collection": archive,
            },
        )
        return ArchiveReceipt(
            archive_id=archive_id,
            archive_collection=archive,
            entity_type=partitions.ORDER_ENTITY,
            entity_id=order_id,
        )

    def _archive_document(
        self,
        document: Document,
        archive: str,
        actor: Actor,
        extra: dict[str, Any] | None = None,
    ) -> str:
        """Copy ``document`` into ``archive`` with provenance, then delete it."""
        payload = payload_of(document)
        check_reserved(document.collection, document.doc_id, payload)

        archive_id = self._identifiers.next_id(IdentifierService.ARCHIVE)
        record = dict(payload)
        record.update(self._provenance(document.collection, document.doc_id, actor))
        if extra:
            record.update(extra)

        self._store.insert(archive, archive_id, record)
        self._store.delete(document)
        return archive_id

    def _provenance(self, collection: str, doc_id: str, actor: Actor) -> dict[str, Any]:
        return {
            partitions.ARCHIVED_AT: self._clock.iso_now(),
            partitions.ORIGINAL_DOC_ID: doc_id,
            partitions.ORIGINAL_COLLECTION: collection,
            partitions.ARCHIVED_BY: actor.email,
            partitions.ARCHIVED_BY_ROLE: actor.role,
        }

    def _token_taken(self, token: str) -> bool:
        return self._store.remove_id_taken(partitions.ADMIN_ARCHIVE, token)

    # -----------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------

    def archive_user(
        self,
        user_id: str,
        actor: Actor,
        *,
        mode: UserArchiveMode | str = UserArchiveMode.MOVE,
        dependent_partitions: Iterable[str] | None = None,
    ) -> ArchiveReceipt:
        """
        Archive a user together with every row that references them.

        One ``usersArchive`` record holds the user payload plus, under
        ``dependents``, the matching rows of each dependent partition.
        Under ``move`` every dependent row is also moved to its per-type
        archive partition (tagged with ``userArchiveId``); under
        ``snapshot`` the dependent rows stay live.

        Raises:
            DocumentNotFoundError: No live user record.
            ReservedFieldError: A payload collides with archive metadata.
        """
        mode = UserArchiveMode(mode)
        live_partitions = tuple(
            dependent_partitions
            if dependent_partitions is not None
            else partitions.DEPENDENT_ARCHIVES
        )

        with self._locks.hold(f"user:{user_id}"):
            user_doc = self._find_user(user_id)
            user_payload = payload_of(user_doc)
            check_reserved(user_doc.collection, user_doc.doc_id, user_payload)

            archive_id = self._identifiers.next_id(IdentifierService.ARCHIVE)
            dependents: dict[str, list[dict[str, Any]]] = {}
            moved = 0

            for live in live_partitions:
                rows = self._store.find_by_user(live, user_id, for_update=True)
                snapshot = []
                for row in rows:
                    row_payload = payload_of(row)
                    check_reserved(row.collection, row.doc_id, row_payload)
                    snapshot.append({**row_payload, partitions.ORIGINAL_DOC_ID: row.doc_id})
                    if mode is UserArchiveMode.MOVE:
                        self._move_dependent(row, archive_id, actor)
                        moved += 1
                dependents[live] = snapshot

            record = dict(user_payload)
            record.update(self._provenance(user_doc.collection, user_doc.doc_id, actor))
            record[partitions.DEPENDENTS] = dependents
            self._store.insert(partitions.USERS_ARCHIVE, archive_id, record)
            self._store.delete(user_doc)

            if mode is UserArchiveMode.MOVE:
                action = f"Archived user {user_id} and all users data"
            else:
                action = f"Archived user {user_id}"
            self._activity.record(action, actor, user_id=user_id)

        dependent_count = sum(len(rows) for rows in dependents.values())
        logger.info(
            "user_archived",
            extra={
                "user_id": user_id,
                "archive_id": archive_id,
                "mode": mode.value,
                "dependent_count": dependent_count,
                "moved_count": moved,
            },
        )
        return ArchiveReceipt(
            archive_id=archive_id,
            archive_collection=partitions.USERS_ARCHIVE,
            entity_type=USER_ENTITY,
            entity_id=user_id,
            dependent_count=dependent_count,
        )

    def _find_user(self, user_id: str) -> Document:
        document = self._store.get(partitions.USERS, user_id, for_update=True)
        if document is not None:
            return document
        matches = self._store.find_by_user(partitions.USERS, user_id, for_update=True)
        if matches:
            return matches[0]
        raise DocumentNotFoundError(partitions.USERS, user_id)

    def _move_dependent(self, row: Document, user_archive_id: str, actor: Actor) -> None:
        """Move one dependent row into its per-type archive partition."""
        live = row.collection
        archive = partitions.archive_partition_for(live)
        extra = {partitions.USER_ARCHIVE_ID: user_archive_id}

        if live in partitions.ORDER_PARTITIONS:
            with self._locks.hold(f"order:{row.doc_id}"):
                locator = self._store.locate_order(row.doc_id, for_update=True)
                self._archive_document(row, archive, actor, extra)
                if locator is not None and locator.partition == live:
                    self._store.release_order(locator)
        else:
            self._archive_document(row, archive, actor, extra)

