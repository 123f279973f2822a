from __future__ import annotations

import threading
import time
from typing import Callable, Generic, TypeVar

V = TypeVar("V")


class ExpiringStore(Generic[V]):
    """
    Process-wide keyed table shared by every request handler.

    All reads and writes go through one lock. `sweep` copies the items under the
    lock, decides expiry outside it and removes expired keys one at a time,
    re-checking each under the lock so a concurrent refresh is not lost.
    """

    def __init__(self, name: str, *, clock: Callable[[], float] = time.time) -> None:
        self.name = name
        self.clock = clock
        self._items: dict[str, V] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> V | None:
        with self._lock:
            return self._items.get(key)

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def update(self, key: str, fn: Callable[[V | None], V | None]) -> V | None:
        """Atomic read-modify-write; returning None from `fn` removes the key."""
        with self._lock:
            value = fn(self._items.get(key))
            if value is None:
                self._items.pop(key, None)
            else:
                self._items[key] = value
            return value

    def sweep(self, is_expired: Callable[[V, float], bool]) -> int:
        now = self.clock()
        with self._lock:
            snapshot = list(self._items.items())

        expired = [key for key, value in snapshot if is_expired(value, now)]
        removed = 0
        for key in expired:
            with self._lock:
                current = self._items.get(key)
                if current is not None and is_expired(current, now):
                    del self._items[key]
                    removed += 1
        return removed

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items
