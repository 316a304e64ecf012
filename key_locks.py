"""Per-key mutual exclusion for mutations against non-transactional backends."""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, TypeVar

from sheetkit.errors import LockTimeout


T = TypeVar("T")

_logger = logging.getLogger("sheetbase.locks")
_SLOW_MS = float(os.getenv("SHEETBASE_LOCK_SLOW_MS", "500"))
_DEFAULT = object()


class KeyedLocks:
    """Named lock scopes.

    Calls holding the same key run one at a time; different keys never
    contend. Locks are reentrant for the holding thread, so a workflow that
    already holds a table key may call store operations that take it again.
    Entries are reference counted and dropped once no caller holds or waits
    on them.
    """

    def __init__(self, timeout: float | None = None, slow_ms: float | None = None) -> None:
        self._timeout = timeout
        self._slow_ms = _SLOW_MS if slow_ms is None else slow_ms
        self._locks: Dict[str, List] = {}
        self._manager_lock = threading.Lock()

    @property
    def timeout(self) -> float | None:
        return self._timeout

    def _checkout(self, key: str) -> threading.RLock:
        with self._manager_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._manager_lock:
            entry = self._locks.get(key)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str, timeout=_DEFAULT) -> Iterator[None]:
        wait_s = self._timeout if timeout is _DEFAULT else timeout
        lock = self._checkout(key)
        start = time.perf_counter()
        acquired = lock.acquire(timeout=-1 if wait_s is None else max(wait_s, 0.0))
        wait_ms = (time.perf_counter() - start) * 1000
        if not acquired:
            self._checkin(key)
            _logger.warning("lock_timeout key=%s wait_ms=%.1f", key, wait_ms)
            raise LockTimeout(
                f"Timed out waiting for lock {key!r}",
                detail={"key": key, "timeout_s": wait_s},
            )
        if wait_ms >= self._slow_ms:
            _logger.warning("lock_slow_wait key=%s wait_ms=%.1f", key, wait_ms)
        try:
            yield
        finally:
            lock.release()
            self._checkin(key)

    def with_lock(self, key: str, fn: Callable[[], T], timeout=_DEFAULT) -> T:
        with self.hold(key, timeout=timeout):
            return fn()

    @property
    def active_count(self) -> int:
        with self._manager_lock:
            return len(self._locks)
