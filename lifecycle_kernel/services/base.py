"""
Common ancestor of the kernel services.

A kernel service works inside a transaction it did not open: it reads,
writes and flushes through ``self.session`` and leaves commit and
rollback to whoever created the session (LifecycleEngine,
RestoreCoordinator, or a test fixture).  That is what lets a partition
move, its stock changes and its log entry succeed or fail together.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    def __init__(self, session: Session):
        self.session = session
