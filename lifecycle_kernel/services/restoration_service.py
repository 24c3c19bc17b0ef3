"""
RestorationService -- reverses archival.

Responsibility:
    Rebuilds live records from archive records: single entities by
    archive id or admin ``R-`` token, a user's base record alone, or a
    user together with every archived row that references them.

Architecture position:
    Kernel > Services -- imperative shell.  Called by RestoreCoordinator,
    which guards each restore with a RestoreOperation row.

Invariants enforced:
    - Archive-only metadata is stripped: a restored payload equals the
      payload that was archived.
    - The archive copy is deleted in the same transaction as the write,
      so a record is restored exactly once.
    - Full user restore is idempotent by natural key
      (live partition, originalDocId): rows already live are not written
      again, only their archive copy is removed.  Once nothing archived
      remains for the user, a further call raises ArchiveNotFoundError.
    - Restored orders re-acquire their locator; an order already live in
      another partition is a DuplicateOrderError, never a second copy.

Failure modes:
    - ArchiveNotFoundError: no archive record, or the record has no
      originalDocId.
    - DuplicateOrderError: restored order id is live elsewhere.
    - DocumentExistsError: simple restore over an occupied live slot.
"""

from typing import Any

from sqlalchemy.orm import Session

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.domain.dtos import SYSTEM_ACTOR, Actor
from lifecycle_kernel.exceptions import (
    ArchiveNotFoundError,
    DocumentExistsError,
    DuplicateOrderError,
)
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.models.document import Document
from lifecycle_kernel.services.activity_log_service import ActivityLogService
from lifecycle_kernel.services.base import BaseService
from lifecycle_kernel.services.document_store import DocumentStore, payload_of
from lifecycle_kernel.services.identifier_service import IdentifierService
from lifecycle_kernel.utils.keyed_lock import KeyedLock

logger = get_logger("services.restoration")


def restore_lock_key(origin: str, original_id: str) -> str:
    """Key serializing a restore with other writers of the same live record."""
    if origin in partitions.ORDER_PARTITIONS:
        return f"{partitions.ORDER_ENTITY}:{original_id}"
    if origin == partitions.USERS:
        return f"user:{original_id}"
    for entity_type, (live, _archive) in partitions.ENTITY_ARCHIVES.items():
        if live == origin:
            return f"{entity_type}:{original_id}"
    return f"{origin}:{original_id}"


def strip_archive_metadata(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        k: v for k, v in payload.items()
        if k not in partitions.RESERVED_ARCHIVE_FIELDS
    }


class RestorationService(BaseService):
    """
    Service for restoring archived records.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT guard against concurrent restores of the same entity;
          RestoreCoordinator does.
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
    # Lookup
    # -----------------------------------------------------------------

    def find_archive(self, key: str) -> Document:
        """
        Locate an archive record by archive id or admin ``R-`` token.

        Raises:
            ArchiveNotFoundError: Nothing archived under ``key``.
        """
        if key.startswith("R-"):
            document = self._store.find_by_remove_id(partitions.ADMIN_ARCHIVE, key)
            if document is None:
                raise ArchiveNotFoundError(key)
            return document

        matches = self._store.find_in(partitions.ARCHIVE_PARTITIONS, key)
        if not matches:
            raise ArchiveNotFoundError(key)
        return matches[0]

    # -----------------------------------------------------------------
    # Simple restore
    # -----------------------------------------------------------------

    def restore_entity(self, key: str, actor: Actor = SYSTEM_ACTOR) -> dict[str, Any]:
        """
        Restore one archive record into its origin partition.

        Returns the restored payload.

        Raises:
            ArchiveNotFoundError: Unknown key or missing originalDocId.
            DuplicateOrderError: Restored order id is live elsewhere.
            DocumentExistsError: The live slot is occupied.
        """
        with self._locks.hold(f"archive:{key}"):
            document = self.find_archive(key)
            archive_collection, archive_id = document.collection, document.doc_id
            payload = payload_of(document)
            original_id = payload.get(partitions.ORIGINAL_DOC_ID)
            if not original_id:
                raise ArchiveNotFoundError(key, "archive record has no originalDocId")

            origin = partitions.origin_of(archive_collection)
            restored = strip_archive_metadata(payload)

            with self._locks.hold(restore_lock_key(origin, original_id)):
                if origin in partitions.ORDER_PARTITIONS:
                    self._store.claim_order(original_id, origin)
                if self._store.exists(origin, original_id):
                    raise DocumentExistsError(origin, original_id)
                self._store.insert(origin, original_id, restored)
                self._store.delete(document)

            user_id = restored.get("userId")
            self._activity.record(
                f"Restored {original_id} from {archive_collection}",
                actor,
                user_id=user_id if isinstance(user_id, str) else None,
                order_id=original_id if origin in partitions.ORDER_PARTITIONS else None,
                product_id=original_id if origin == partitions.PRODUCTS else None,
            )

        logger.info(
            "entity_restored",
            extra={
                "archive_id": archive_id,
                "archive_collection": archive_collection,
                "origin": origin,
                "original_doc_id": original_id,
            },
        )
        return restored

    # -----------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------

    def _user_archives(self, user_id: str) -> list[Document]:
        found = {
            d.doc_id: d
            for d in self._store.find_by_user(partitions.USERS_ARCHIVE, user_id, for_update=True)
        }
        for document in self._store.find_by_original(
            partitions.USERS_ARCHIVE, user_id, for_update=True
        ):
            found.setdefault(document.doc_id, document)
        return sorted(
            found.values(),
            key=lambda d: (str(d.payload.get(partitions.ARCHIVED_AT, "")), d.doc_id),
        )

    def restore_user_only(self, user_id: str, actor: Actor = SYSTEM_ACTOR) -> int:
        """
        Restore the user's base record, leaving archived dependents alone.

        Returns the number of records written (0 or 1).

        Raises:
            ArchiveNotFoundError: No user archive record.
        """
        with self._locks.hold(f"user:{user_id}"):
            archives = self._user_archives(user_id)
            if not archives:
                raise ArchiveNotFoundError(f"user:{user_id}", "no user archive record")

            restored = self._restore_user_records(archives)
            self._activity.record(f"Restored user {user_id}", actor, user_id=user_id)

        logger.info(
            "user_restored",
            extra={"user_id": user_id, "restored_count": restored, "with_data": False},
        )
        return restored

    def restore_user_with_all_data(
        self,
        user_id: str,
        actor: Actor = SYSTEM_ACTOR,
    ) -> int:
        """
        Restore a user and every archived row that references them.

        Returns the number of records written.

        Raises:
            ArchiveNotFoundError: Neither a user archive nor any archived
                row exists for the user.
            DuplicateOrderError: An archived order is live elsewhere.
        """
        with self._locks.hold(f"user:{user_id}"):
            archives = self._user_archives(user_id)
            restored = self._restore_user_records(archives)
            seen = len(archives)

            for live, archive in partitions.DEPENDENT_ARCHIVES.items():
                for row in self._store.find_by_user(archive, user_id, for_update=True):
                    seen += 1
                    restored += self._restore_dependent(row, live)

            if seen == 0:
                raise ArchiveNotFoundError(f"user:{user_id}", "no archived user data")

            self._activity.record(
                f"Restored user {user_id} with all data", actor, user_id=user_id
            )

        logger.info(
            "user_restored",
            extra={"user_id": user_id, "restored_count": restored, "with_data": True},
        )
        return restored

    def _restore_user_records(self, archives: list[Document]) -> int:
        restored = 0
        for document in archives:
            payload = payload_of(document)
            original_id = payload.get(partitions.ORIGINAL_DOC_ID)
            if not original_id:
                raise ArchiveNotFoundError(
                    document.doc_id, "archive record has no originalDocId"
                )
            if not self._store.exists(partitions.USERS, original_id):
                self._store.insert(
                    partitions.USERS, original_id, strip_archive_metadata(payload)
                )
                restored += 1
            self._store.delete(document)
        return restored

    def _restore_dependent(self, row: Document, default_live: str) -> int:
        """Move one archived dependent row back; 0 when already live."""
        payload = payload_of(row)
        original_id = payload.get(partitions.ORIGINAL_DOC_ID)
        if not original_id:
            logger.warning(
                "archived_row_without_origin",
                extra={"collection": row.collection, "doc_id": row.doc_id},
            )
            return 0

        live = payload.get(partitions.ORIGINAL_COLLECTION) or default_live
        if self._store.exists(live, original_id):
            self._store.delete(row)
            logger.info(
                "archived_row_already_live",
                extra={"collection": live, "doc_id": original_id},
            )
            return 0

        if live in partitions.ORDER_PARTITIONS:
            with self._locks.hold(f"order:{original_id}"):
                locator = self._store.locate_order(original_id, for_update=True)
                if locator is not None and locator.partition != live:
                    raise DuplicateOrderError(original_id, locator.partition)
                if locator is None:
                    self._store.claim_order(original_id, live)
                self._store.insert(live, original_id, strip_archive_metadata(payload))
        else:
            self._store.insert(live, original_id, strip_archive_metadata(payload))
        self._store.delete(row)
        return 1
