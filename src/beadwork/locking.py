"""Per-item locks for serializing graph compositions that share items."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager


class ItemLocks:
    """Lazily created lock per item id.

    ``hold()`` acquires in sorted id order so two callers locking overlapping
    sets can never deadlock on each other. Locks are re-entrant: a thread already holding
    an item may ask for it again as part of a larger set.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, item_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[item_id] = lock
            return lock

    @contextmanager
    def hold(self, item_ids: Iterable[str]) -> Iterator[None]:
        ordered = sorted({i for i in item_ids if i})
        acquired: list[threading.RLock] = []
        try:
            for item_id in ordered:
                lock = self._lock_for(item_id)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
