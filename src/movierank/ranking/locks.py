"""Per-user mutual exclusion."""

import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager


class UserLocks:
    """Registry of one lock per user.

    Operations for the same user run one at a time; different users never
    contend. A user's lock is dropped once nothing holds a reference to it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        """Hold the user's lock for the duration of the block."""
        lock = self.get(user_id)
        with lock:
            yield
