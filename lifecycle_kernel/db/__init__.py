"""Storage plumbing: declarative bases, engine/session handling, ORM guards."""

from lifecycle_kernel.db.base import Base, TrackedBase
from lifecycle_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "create_tables",
    "get_engine",
    "get_session",
    "session_scope",
]
