"""
lifecycle_services -- orchestration over the lifecycle kernel.

``LifecycleEngine`` is the operation surface; ``RestoreCoordinator`` and
``ReconciliationService`` are its collaborators.
"""

from lifecycle_services.lifecycle_engine import LifecycleEngine
from lifecycle_services.reconciliation_service import (
    PartitionMismatch,
    ReconciliationReport,
    ReconciliationService,
)
from lifecycle_services.restore_coordinator import RestoreCoordinator

__all__ = [
    "LifecycleEngine",
    "PartitionMismatch",
    "ReconciliationReport",
    "ReconciliationService",
    "RestoreCoordinator",
]
