from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class MeetingLockRegistry:
    """
    One re-entrant lock per meeting id.

    Every read-modify-write of a meeting row (status, timestamps, participants,
    transcript sequence) runs while holding that meeting's lock, so capacity
    checks and transitions for the same meeting never interleave. Locks for
    different meetings are independent.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def lock_for(self, meeting_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(meeting_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[meeting_id] = lock
            return lock

    @contextmanager
    def hold(self, meeting_id: str) -> Iterator[None]:
        lock = self.lock_for(meeting_id)
        with lock:
            yield

    def discard(self, meeting_id: str) -> None:
        """Forget the lock of a meeting that will not change again."""
        with self._guard:
            self._locks.pop(meeting_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


meeting_locks = MeetingLockRegistry()
