"""
Unbounded in-memory cache backend.
"""

from typing import Any, Dict, Tuple

from .base import _MISS, CacheBackend

_ABSENT = object()


class MemoryCache(CacheBackend):
    """In-memory mapping with no eviction. TTL is accepted and ignored."""

    name = "memory"

    def __init__(self):
        super().__init__()
        self._entries: Dict[str, Any] = {}

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        value = self._entries.get(key, _ABSENT)
        if value is _ABSENT:
            return _MISS
        return True, value

    def _store(self, ttl: float, key: str, value: Any) -> None:
        self._entries[key] = value

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, _ABSENT) is not _ABSENT

    def clear(self) -> None:
        self._entries.clear()
        self.logger.info("Cleared memory cache")

    def size(self) -> int:
        return len(self._entries)

    def keys(self):
        return list(self._entries)
