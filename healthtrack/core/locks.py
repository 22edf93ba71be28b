"""
Per-key mutual exclusion for rollup read-modify-write cycles.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List


class KeyedLock:
    """Hands out one re-entrant lock per key, e.g. (user_id, month).

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the registry only grows with the number of keys in flight.
    `hold` yields True for the holder's outermost acquisition of a key and
    False for nested ones.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}  # key -> [RLock, holders + waiters, owner depth]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[bool]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0, 0]
                self._locks[key] = entry
            entry[1] += 1

        lock = entry[0]
        lock.acquire()
        # depth is only touched by the thread that owns the lock
        entry[2] += 1
        try:
            yield entry[2] == 1
        finally:
            entry[2] -= 1
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)
