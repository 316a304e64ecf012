import os
import sys
import threading
import time
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from key_locks import KeyedLocks
from sheetkit.errors import LockTimeout


class TestKeyedLocks(unittest.TestCase):
    def test_same_key_never_overlaps(self) -> None:
        locks = KeyedLocks()
        active = {"n": 0, "max": 0}
        guard = threading.Lock()

        def work() -> None:
            with guard:
                active["n"] += 1
                active["max"] = max(active["max"], active["n"])
            time.sleep(0.01)
            with guard:
                active["n"] -= 1

        threads = [threading.Thread(target=locks.with_lock, args=("table:Users", work)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(active["max"], 1)
        self.assertEqual(locks.active_count, 0)

    def test_different_keys_run_concurrently(self) -> None:
        locks = KeyedLocks()
        barrier = threading.Barrier(2, timeout=2)
        results = []

        def work() -> None:
            # Both holders must be inside their scopes at the same time.
            barrier.wait()
            results.append(True)

        threads = [
            threading.Thread(target=locks.with_lock, args=("table:Users", work)),
            threading.Thread(target=locks.with_lock, args=("table:Projects", work)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(results, [True, True])

    def test_with_lock_returns_value(self) -> None:
        locks = KeyedLocks()
        self.assertEqual(locks.with_lock("k", lambda: 42), 42)

    def test_timeout_raises_and_releases_entry(self) -> None:
        locks = KeyedLocks(timeout=0.05)
        holding = threading.Event()
        release = threading.Event()

        def holder() -> None:
            with locks.hold("folder:a_1"):
                holding.set()
                release.wait(2)

        t = threading.Thread(target=holder)
        t.start()
        holding.wait(2)
        with self.assertRaises(LockTimeout) as ctx:
            with locks.hold("folder:a_1"):
                pass
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.detail["key"], "folder:a_1")
        release.set()
        t.join()
        self.assertEqual(locks.active_count, 0)

    def test_reentrant_for_holding_thread(self) -> None:
        locks = KeyedLocks(timeout=0.05)
        with locks.hold("table:Users"):
            self.assertEqual(locks.with_lock("table:Users", lambda: "nested"), "nested")
        self.assertEqual(locks.active_count, 0)

    def test_exception_in_scope_releases_lock(self) -> None:
        locks = KeyedLocks(timeout=0.05)
        with self.assertRaises(RuntimeError):
            with locks.hold("k"):
                raise RuntimeError("boom")
        with locks.hold("k"):
            pass
        self.assertEqual(locks.active_count, 0)


if __name__ == "__main__":
    unittest.main()
