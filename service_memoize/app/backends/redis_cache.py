"""
Redis cache backend.
"""

import pickle
from typing import Any, Optional, Tuple

import redis

from shared.errors import CacheBackendError
from .base import _MISS, CacheBackend


class RedisCache(CacheBackend):
    """Stores pickled values in Redis, expiring them after the policy TTL.

    Single-flight resolution is per process; callers in other processes may
    resolve the same key concurrently.
    """

    name = "redis"

    def __init__(self, redis_url: str, key_prefix: str = "memo:", client: Optional[redis.Redis] = None):
        super().__init__()
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis: Optional[redis.Redis] = client

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.Redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        try:
            payload = self._get_redis().get(self._make_key(key))
        except redis.RedisError as e:
            self.logger.error("Cache get error", key=key, error=str(e))
            raise CacheBackendError(self.name, f"get failed for {key}", cause=e)

        if payload is None:
            return _MISS

        try:
            return True, pickle.loads(payload)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, TypeError) as e:
            self.logger.error("Cache payload unreadable", key=key, error=str(e))
            raise CacheBackendError(self.name, f"unreadable payload for {key}", cause=e)

    def _store(self, ttl: float, key: str, value: Any) -> None:
        try:
            payload = pickle.dumps(value)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise CacheBackendError(self.name, f"value for {key} cannot be serialized", cause=e)

        try:
            if ttl > 0:
                self._get_redis().set(self._make_key(key), payload, px=max(1, int(ttl * 1000)))
            else:
                self._get_redis().set(self._make_key(key), payload)
        except redis.RedisError as e:
            self.logger.error("Cache set error", key=key, error=str(e))
            raise CacheBackendError(self.name, f"set failed for {key}", cause=e)

        self.logger.debug("Cached value", key=key, ttl=ttl)

    def invalidate(self, key: str) -> bool:
        try:
            return bool(self._get_redis().delete(self._make_key(key)))
        except redis.RedisError as e:
            raise CacheBackendError(self.name, f"delete failed for {key}", cause=e)

    def clear(self) -> None:
        """Delete every key under the prefix."""
        try:
            client = self._get_redis()
            keys = list(client.scan_iter(match=f"{self.key_prefix}*"))
            if keys:
                client.delete(*keys)
        except redis.RedisError as e:
            raise CacheBackendError(self.name, "clear failed", cause=e)
        self.logger.info("Cleared cache prefix", prefix=self.key_prefix, keys_count=len(keys))

    def size(self) -> int:
        try:
            return sum(1 for _ in self._get_redis().scan_iter(match=f"{self.key_prefix}*"))
        except redis.RedisError as e:
            raise CacheBackendError(self.name, "scan failed", cause=e)

    def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            self._redis.close()
            self._redis = None
            self.logger.info("Redis cache closed")
