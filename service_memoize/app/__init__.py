"""
Memoization service package.

Caches the results of service operations under namespaced keys derived from
their arguments:
- Declaration: ``@cacheable`` policies, ``Key`` parameter tags, or a
  ``PolicyRegistry`` filled at wiring time
- Key derivation: ``<namespace>.<arg>...`` from the selected arguments
- Dispatch: pluggable backends with at-most-once resolution per key

Structure:
- app.policy: Policy records, declaration decorator and metadata cache.
- app.keys: Key builder.
- app.backends: Backend contract, memory, TTL memory and Redis backends.
- app.interceptor: Interceptor, ``memoize`` decorator and cached proxy.
- app.services: Sample service used by the tests.
"""

from .backends import CacheBackend, MemoryCache, RedisCache, TTLMemoryCache, create_backend
from .interceptor import CacheInterceptor, CachedProxy, cached_instance, memoize
from .keys import KeyBuilder, build_key
from .policy import Key, Policy, PolicyRegistry, cacheable, key_positions_of, policy_of

__all__ = [
    "CacheBackend",
    "CacheInterceptor",
    "CachedProxy",
    "Key",
    "KeyBuilder",
    "MemoryCache",
    "Policy",
    "PolicyRegistry",
    "RedisCache",
    "TTLMemoryCache",
    "build_key",
    "cacheable",
    "cached_instance",
    "create_backend",
    "key_positions_of",
    "memoize",
    "policy_of",
]
