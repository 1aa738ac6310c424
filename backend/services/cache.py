"""Simple in-memory TTL cache store. No Redis needed.

The store only records when each value was written. Whether an entry is
still fresh is decided by the caller, which compares the entry's age with
its own TTL, so one store can serve resources with different TTLs.

Note: Each uvicorn worker has its own cache instance. With --workers 2,
data may be fetched twice (once per worker).
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    timestamp: float


class CacheStore(Protocol):
    """Anything that can hold cache entries keyed by string."""

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry for key, or None. Never mutates the store."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Overwrite the entry for key, stamped with the current time."""
        ...


class TTLCache:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._store.get(key)

    def set(self, key: str, value: Any) -> None:
        entry = CacheEntry(value=value, timestamp=self._clock())
        with self._lock:
            self._store[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


cache = TTLCache()
