"""
KeyedLock -- in-process mutual exclusion per entity key.

Responsibility:
    Serializes work on one key ("order:ORD-1", "product:P1") among the
    threads of one process, before the database row lock is taken.  Keeps
    same-process contention off the database and makes lost updates on
    SQLite (which ignores FOR UPDATE) impossible inside one engine.

Architecture position:
    Kernel > Utils -- pure infrastructure, no database access.

Invariants enforced:
    - At most one holder per key at a time.
    - Keys are acquired in sorted order by ``hold_many`` so two callers
      locking overlapping key sets cannot deadlock.
    - Lock entries are dropped once no thread holds or waits on them.
"""

import threading
from contextlib import ExitStack, contextmanager
from typing import Generator, Iterable


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.refs = 0


class KeyedLock:
    """
    Registry of re-entrant locks keyed by string.

    Contract:
        ``hold(key)`` blocks until the calling thread owns the key's lock.
        Re-entrant: the same thread may hold a key more than once.

    Non-goals:
        Does not coordinate across processes; the database row lock and
        version compare-and-swap do that.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.refs -= 1
                if entry.refs == 0:
                    del self._entries[key]

    @contextmanager
    def hold_many(self, keys: Iterable[str]) -> Generator[None, None, None]:
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                stack.enter_context(self.hold(key))
            yield

    def active_keys(self) -> list[str]:
        """Keys currently held or awaited (diagnostics and tests)."""
        with self._guard:
            return sorted(self._entries)
