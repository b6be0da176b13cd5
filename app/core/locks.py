from __future__ import annotations

import contextlib
import threading
from typing import Dict, Hashable, Iterator


class KeyedLock:
    """Mutual exclusion per key; different keys never block each other.

    Entries are reference counted and dropped once no thread holds or waits
    on them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._refcounts: Dict[Hashable, int] = {}

    def _acquire_entry(self, key: Hashable) -> threading.Lock:
        with self._lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = threading.Lock()
                self._locks[key] = entry
            self._refcounts[key] = int(self._refcounts.get(key, 0)) + 1
            return entry

    def _release_entry(self, key: Hashable) -> None:
        with self._lock:
            remaining = int(self._refcounts.get(key, 0)) - 1
            if remaining <= 0:
                self._refcounts.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._refcounts[key] = remaining

    @contextlib.contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        entry = self._acquire_entry(key)
        entry.acquire()
        try:
            yield
        finally:
            entry.release()
            self._release_entry(key)

    def active_keys(self) -> int:
        with self._lock:
            return len(self._locks)
