import threading
from contextlib import contextmanager
from typing import Iterable

from shiftswap.core.errors import StorageUnavailable


class ShiftLockRegistry:
    """Per-shift mutexes for the swap critical section.

    Locks are always taken in ascending shift id order so two callers
    working on overlapping shift pairs cannot deadlock. An entry lives only
    while someone holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders + waiters]
        self._locks: dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, shift_ids: Iterable, timeout: float):
        keys = sorted({str(s) for s in shift_ids if s is not None})
        checked_out: list[str] = []
        acquired: list[threading.Lock] = []
        try:
            for key in keys:
                lock = self._checkout(key)
                checked_out.append(key)
                if not lock.acquire(timeout=timeout):
                    raise StorageUnavailable(
                        f"Timed out waiting for shift {key}",
                        shift_id=key,
                        timeout_seconds=timeout,
                    )
                acquired.append(lock)
            yield keys
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)


# Shared by every request handled in this process
shift_locks = ShiftLockRegistry()
