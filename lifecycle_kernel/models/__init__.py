"""Domain models for the lifecycle kernel."""

from lifecycle_kernel.models.activity_log import ActivityLogEntry
from lifecycle_kernel.models.document import Document
from lifecycle_kernel.models.identifier_counter import IdentifierCounter
from lifecycle_kernel.models.order_locator import OrderLocator
from lifecycle_kernel.models.restore_operation import RestoreOperation, RestoreStatus

__all__ = [
    "ActivityLogEntry",
    "Document",
    "IdentifierCounter",
    "OrderLocator",
    "RestoreOperation",
    "RestoreStatus",
]
