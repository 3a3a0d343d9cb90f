from __future__ import annotations

from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator


class PunchLockRegistry:
    """Per-user locks serializing clock-in, clock-out and toggle decisions.

    The lock is held from the open-punch lookup until the write is committed.
    Writers in other processes are covered by the partial unique index on
    open punches.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._user_locks: Dict[int, Lock] = {}

    def for_user(self, user_id: int) -> Lock:
        with self._lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = Lock()
                self._user_locks[user_id] = lock
            return lock

    @contextmanager
    def hold(self, user_id: int) -> Iterator[None]:
        lock = self.for_user(user_id)
        with lock:
            yield


punch_locks = PunchLockRegistry()
