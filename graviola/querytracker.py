"""Limit on the number of queries that may run at the same time."""

from __future__ import annotations

import random
import sys
import threading

__all__ = ["QueryTrackerError", "GraviolaQueryTracker"]

_CANCEL_POLL_SECONDS = 0.02


class QueryTrackerError(RuntimeError):
    """Raised when a query slot cannot be taken or given back."""


class GraviolaQueryTracker:
    """Hands out query slots, blocking while all of them are taken."""

    def __init__(self, max_concurrent_queries: int) -> None:
        if max_concurrent_queries < 1:
            raise ValueError("max_concurrent_queries < 1 is not allowed")
        self._max_concurrent_queries = max_concurrent_queries
        self._slots = threading.BoundedSemaphore(max_concurrent_queries)

    def insert(self, query: str = "", cancel: threading.Event | None = None) -> int:
        """Take a slot for ``query``, blocking until one is free or ``cancel`` is set."""
        if cancel is None:
            self._slots.acquire()
            return random.randrange(sys.maxsize)

        while True:
            if self._slots.acquire(timeout=_CANCEL_POLL_SECONDS):
                return random.randrange(sys.maxsize)
            if cancel.is_set():
                raise QueryTrackerError(
                    "when waiting for query concurrency slot: context canceled"
                )

    def delete(self, index: int) -> None:
        """Give back a slot taken by ``insert``."""
        try:
            self._slots.release()
        except ValueError as exc:
            raise QueryTrackerError("no query slot is taken") from exc

    def close(self) -> None:
        """Nothing to release."""
        return None