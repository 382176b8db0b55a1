"""
Cache backend contract and the single-flight resolution shared by all
concrete backends.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Any, Awaitable, Callable, Dict, Protocol, Tuple, runtime_checkable

from shared.errors import CacheBackendError
from shared.logging import get_logger

Resolver = Callable[[], Any]
AsyncResolver = Callable[[], Awaitable[Any]]

_MISS: Tuple[bool, Any] = (False, None)


@runtime_checkable
class SupportsGetOrCompute(Protocol):
    """Anything exposing get_or_compute is a valid backend."""

    def get_or_compute(self, ttl: float, key: str, resolver: Resolver) -> Any:
        ...


class _InFlight:
    """A resolution in progress for one key."""

    __slots__ = ("thread_id", "future")

    def __init__(self):
        self.thread_id = threading.get_ident()
        self.future: Future = Future()


class CacheBackend(ABC):
    """Base class for backends mapping string keys to stored values.

    Subclasses provide storage through ``_lookup`` and ``_store``; this class
    guarantees that for a given key at most one resolver runs at a time and
    that concurrent callers on a missing key share its outcome. A resolver
    failure is handed to every caller waiting on it and nothing is stored.
    """

    name = "backend"

    def __init__(self):
        self.logger = get_logger(f"memoize.backend.{self.name}")
        self._lock = threading.Lock()
        self._inflight: Dict[str, _InFlight] = {}
        self._async_inflight: Dict[Tuple[asyncio.AbstractEventLoop, str], asyncio.Task] = {}

    @abstractmethod
    def _lookup(self, key: str) -> Tuple[bool, Any]:
        """Return ``(True, value)`` when the key is stored, else ``(False, None)``."""

    @abstractmethod
    def _store(self, ttl: float, key: str, value: Any) -> None:
        """Store a value under the key."""

    @abstractmethod
    def invalidate(self, key: str) -> bool:
        """Remove a key. Returns True when something was removed."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored entry."""

    @abstractmethod
    def size(self) -> int:
        """Number of stored entries."""

    def __len__(self) -> int:
        return self.size()

    def contains(self, key: str) -> bool:
        return self._lookup(key)[0]

    def get_or_compute(self, ttl: float, key: str, resolver: Resolver) -> Any:
        """Return the value stored under key, resolving and storing it on a miss."""
        hit, value = self._lookup(key)
        if hit:
            return value

        with self._lock:
            flight = self._inflight.get(key)
            owner = flight is None
            if owner:
                flight = _InFlight()
                self._inflight[key] = flight

        if not owner:
            if flight.thread_id == threading.get_ident():
                raise CacheBackendError(self.name, f"Recursive resolution of key {key}")
            return flight.future.result()

        try:
            # Another owner may have published between the fast path and registration
            hit, value = self._lookup(key)
            if not hit:
                value = resolver()
                if value is not None:
                    self._store(ttl, key, value)
        except BaseException as exc:
            self._land(key)
            flight.future.set_exception(exc)
            raise

        self._land(key)
        flight.future.set_result(value)
        return value

    async def aget_or_compute(self, ttl: float, key: str, resolver: AsyncResolver) -> Any:
        """Coroutine variant of get_or_compute; ``resolver`` returns an awaitable.

        Coroutines of one event loop share a single resolution per key.
        """
        hit, value = self._lookup(key)
        if hit:
            return value

        loop = asyncio.get_running_loop()
        with self._lock:
            task = self._async_inflight.get((loop, key))
            if task is None:
                task = loop.create_task(self._aresolve(ttl, key, resolver, loop))
                self._async_inflight[(loop, key)] = task

        if task is asyncio.current_task():
            raise CacheBackendError(self.name, f"Recursive resolution of key {key}")
        return await asyncio.shield(task)

    def with_ttl(self, ttl: float) -> Callable[[str, Resolver], Any]:
        """Bind a TTL, returning a ``(key, resolver)`` callable."""

        def apply(key: str, resolver: Resolver) -> Any:
            return self.get_or_compute(ttl, key, resolver)

        return apply

    async def _aresolve(self, ttl: float, key: str, resolver: AsyncResolver,
                        loop: asyncio.AbstractEventLoop) -> Any:
        try:
            hit, value = self._lookup(key)
            if hit:
                return value
            value = await resolver()
            if value is not None:
                self._store(ttl, key, value)
            return value
        finally:
            with self._lock:
                self._async_inflight.pop((loop, key), None)

    def _land(self, key: str) -> None:
        with self._lock:
            self._inflight.pop(key, None)
