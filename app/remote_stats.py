"""Per-request accounting of remote backend calls."""

from __future__ import annotations

import contextvars
import logging
import os
import threading


_STATS: contextvars.ContextVar[dict | None] = contextvars.ContextVar("sheetbase_remote_stats", default=None)
_STATS_LOCK = threading.Lock()
_SLOW_MS = float(os.getenv("SHEETBASE_REMOTE_SLOW_MS", "1500"))
_logger = logging.getLogger("sheetbase.remote")


def reset_remote_stats() -> dict:
    stats = {"calls": 0, "ms": 0.0, "log": []}
    _STATS.set(stats)
    return stats


def get_remote_stats() -> dict:
    stats = _STATS.get()
    if not isinstance(stats, dict):
        return {"calls": 0, "ms": 0.0, "log": []}
    return stats


def record_remote_call(name: str, elapsed_ms: float, status: int | None = None) -> None:
    # Mutated in place: worker threads share the dict installed by the request middleware.
    stats = _STATS.get()
    if isinstance(stats, dict):
        with _STATS_LOCK:
            stats["calls"] += 1
            stats["ms"] += elapsed_ms
            stats["log"].append(name)
    message = {"call": name, "ms": round(elapsed_ms, 2), "status": status}
    if elapsed_ms >= _SLOW_MS:
        _logger.warning("remote_slow_call=%s", message)
    else:
        _logger.info("remote_call=%s", message)
