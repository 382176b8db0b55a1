"""
Backend construction from configuration.
"""

from typing import Optional

from shared.config import MemoizeConfig, get_config
from shared.logging import get_logger

from .base import CacheBackend
from .memory import MemoryCache
from .redis_cache import RedisCache
from .ttl_memory import TTLMemoryCache

logger = get_logger("memoize.backend")


def create_backend(config: Optional[MemoizeConfig] = None) -> CacheBackend:
    """Create the backend named by ``config.backend``."""
    config = config or get_config()

    if config.backend == "ttl_memory":
        backend: CacheBackend = TTLMemoryCache(max_entries=config.max_entries)
    elif config.backend == "redis":
        backend = RedisCache(config.redis_url, key_prefix=config.redis_key_prefix)
    else:
        backend = MemoryCache()

    logger.info("Created cache backend", backend=backend.name, env=config.env)
    return backend
