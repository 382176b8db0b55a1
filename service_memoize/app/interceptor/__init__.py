"""
Interception surfaces: the interceptor itself, the ``memoize`` decorator
factory and the cached proxy.
"""

from .interceptor import CacheInterceptor, memoize
from .proxy import CachedProxy, cached_instance, public_operations

__all__ = ["CacheInterceptor", "CachedProxy", "cached_instance", "memoize", "public_operations"]
