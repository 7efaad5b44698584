"""Per-key in-process mutual exclusion.

Webhook deliveries and operator actions for *different* orders never contend;
two callers touching the *same* order (or the same provider notification)
serialize on that key only. Entries are reference counted and dropped when
the last holder leaves, so the table does not grow with order volume.
"""

import threading
from contextlib import contextmanager


class KeyedLocks:
    def __init__(self, name: str) -> None:
        self.name = name
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [RLock, holders]

    def _acquire_entry(self, key: str) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str):
        """Hold the locks for all ``keys``.

        Keys are acquired in sorted order so two callers asking for
        overlapping sets cannot deadlock.
        """
        ordered = sorted({str(k) for k in keys if k})
        acquired: list[tuple[str, threading.RLock]] = []
        try:
            for key in ordered:
                lock = self._acquire_entry(key)
                lock.acquire()
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


order_locks = KeyedLocks("order")
notification_locks = KeyedLocks("payment-notification")
payout_locks = KeyedLocks("payout")
sequence_lock = threading.Lock()
