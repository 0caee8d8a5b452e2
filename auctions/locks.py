"""
auctions/locks.py -- Per-key mutual exclusion for the auction store.

KeyedLock hands out one threading.Lock per auction id, created on first use
and dropped when the last holder releases it, so the registry does not grow
with the number of auctions ever touched.

Only the registry bookkeeping runs under the shared _guard mutex. The
critical section itself holds the per-key lock alone: two different auction
ids never wait on each other.

This serializes writers inside one process. Writers in other processes are
caught by the store's version check instead.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLock:
    """Usage:
    locks = KeyedLock()
    with locks.hold(auction_id):
        ...  # read-compare-write for this auction only
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._entries)
