"""Services for the lifecycle kernel (write side)."""

from lifecycle_kernel.services.activity_log_service import ActivityLogService
from lifecycle_kernel.services.archival_service import ArchivalService, UserArchiveMode
from lifecycle_kernel.services.document_store import DocumentStore
from lifecycle_kernel.services.identifier_service import IdentifierService
from lifecycle_kernel.services.inventory_ledger import InventoryLedger, MissingProductPolicy
from lifecycle_kernel.services.notification_service import (
    NotificationKind,
    NotificationService,
)
from lifecycle_kernel.services.order_lifecycle_service import OrderLifecycleService
from lifecycle_kernel.services.restoration_service import RestorationService
from lifecycle_kernel.services.return_service import ReturnService

__all__ = [
    "ActivityLogService",
    "ArchivalService",
    "DocumentStore",
    "IdentifierService",
    "InventoryLedger",
    "MissingProductPolicy",
    "NotificationKind",
    "NotificationService",
    "OrderLifecycleService",
    "RestorationService",
    "ReturnService",
    "UserArchiveMode",
]
