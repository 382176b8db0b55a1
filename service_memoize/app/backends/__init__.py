"""
Cache backends.

Every backend exposes ``get_or_compute(ttl, key, resolver)``. The memory
backend is the minimum compliant one; the TTL and Redis backends enforce
expiry.
"""

from .base import CacheBackend, SupportsGetOrCompute
from .factory import create_backend
from .memory import MemoryCache
from .redis_cache import RedisCache
from .ttl_memory import TTLMemoryCache

__all__ = [
    "CacheBackend",
    "MemoryCache",
    "RedisCache",
    "SupportsGetOrCompute",
    "TTLMemoryCache",
    "create_backend",
]
