"""Tests for the in-process KeyedLock registry."""

import threading
import time

from lifecycle_kernel.utils.keyed_lock import KeyedLock


class TestKeyedLock:
    def test_entries_removed_after_release(self):
        locks = KeyedLock()
        with locks.hold("order:A"):
            assert locks.active_keys() == ["order:A"]
        assert locks.active_keys() == []

    def test_reentrant_for_same_thread(self):
        locks = KeyedLock()
        with locks.hold("order:A"):
            with locks.hold("order:A"):
                assert locks.active_keys() == ["order:A"]
        assert locks.active_keys() == []

    def test_hold_many_deduplicates(self):
        locks = KeyedLock()
        with locks.hold_many(["b", "a", "b"]):
            assert locks.active_keys() == ["a", "b"]
        assert locks.active_keys() == []

    def test_same_key_is_exclusive(self):
        locks = KeyedLock()
        inside = []
        overlaps = []
        guard = threading.Lock()

        def worker():
            with locks.hold("product:P1"):
                with guard:
                    inside.append(1)
                    if len(inside) > 1:
                        overlaps.append(True)
                time.sleep(0.005)
                with guard:
                    inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert locks.active_keys() == []

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        acquired = threading.Event()

        def other():
            with locks.hold("order:B"):
                acquired.set()

        with locks.hold("order:A"):
            t = threading.Thread(target=other)
            t.start()
            assert acquired.wait(timeout=2)
            t.join()
