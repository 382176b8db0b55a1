"""
In-memory cache backend with TTL enforcement and LRU size bound.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

from .base import _MISS, CacheBackend


class TTLMemoryCache(CacheBackend):
    """In-memory cache that honours the policy TTL.

    Expiry is checked lazily on read; a TTL of 0 never expires. When
    ``max_entries`` is set, the least recently used entry is evicted on
    overflow.
    """

    name = "ttl_memory"

    def __init__(self, max_entries: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, Optional[float]]]" = OrderedDict()
        self._entries_lock = threading.Lock()
        self._evictions = 0

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        with self._entries_lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISS

            value, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                del self._entries[key]
                self.logger.debug("Expired cache entry", key=key)
                return _MISS

            self._entries.move_to_end(key)
            return True, value

    def _store(self, ttl: float, key: str, value: Any) -> None:
        expires_at = self._clock() + ttl if ttl > 0 else None
        with self._entries_lock:
            self._entries[key] = (value, expires_at)
            self._entries.move_to_end(key)

            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    self.logger.debug("Evicted cache entry", key=evicted)

    def invalidate(self, key: str) -> bool:
        with self._entries_lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()
        self.logger.info("Cleared TTL memory cache")

    def size(self) -> int:
        return len(self._entries)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        with self._entries_lock:
            expired = [
                key for key, (_, expires_at) in self._entries.items()
                if expires_at is not None and expires_at <= now
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def get_stats(self):
        """Entry count, bound and evictions so far."""
        return {
            "backend": self.name,
            "entries": self.size(),
            "max_entries": self.max_entries,
            "evictions": self._evictions,
        }
