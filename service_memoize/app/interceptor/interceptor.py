"""
Cache interceptor.

Wraps operation invocations: looks up the operation's policy, derives the
cache key and asks the backend for the stored value, handing it a resolver
that runs the original operation on a miss. Operations without a policy are
executed directly and never reach the backend.
"""

import functools
import inspect
import itertools
import types
from typing import Any, Callable, Dict, Optional, Sequence, Union

from shared.config import MemoizeConfig, get_config
from shared.errors import CacheInfrastructureError
from shared.logging import configure_logging, get_logger, resolution_context

from ..backends.base import SupportsGetOrCompute
from ..backends.factory import create_backend
from ..keys.builder import KeyBuilder
from ..policy.metadata import OperationMetadata, operation_name, policy_of
from ..policy.models import POLICY_ATTRIBUTE, WRAPPED_ATTRIBUTE, Policy, PolicyRegistry

BackendSource = Union[SupportsGetOrCompute, Callable[[], SupportsGetOrCompute]]
ResolveHook = Callable[[str, str], None]


class CacheInterceptor:
    """Dispatches policy-bearing operations through a cache backend."""

    def __init__(
        self,
        backend: BackendSource,
        registry: Optional[PolicyRegistry] = None,
        metadata: Optional[OperationMetadata] = None,
        key_builder: Optional[KeyBuilder] = None,
        on_resolve: Optional[ResolveHook] = None,
    ):
        self._backend = backend
        self.registry = registry
        self.metadata = metadata or OperationMetadata()
        self.key_builder = key_builder or KeyBuilder()
        self.on_resolve = on_resolve
        self.logger = get_logger("memoize.interceptor")

    @classmethod
    def from_config(cls, config: Optional[MemoizeConfig] = None, backend: Optional[BackendSource] = None,
                    **kwargs) -> "CacheInterceptor":
        """Build an interceptor whose backend and key strictness come from settings.

        Also configures structured logging at the configured level.
        """
        config = config or get_config()
        configure_logging("memoize", config.log_level)
        return cls(
            backend if backend is not None else create_backend(config),
            key_builder=KeyBuilder(strict=config.strict_keys),
            **kwargs,
        )

    @property
    def backend(self) -> SupportsGetOrCompute:
        """The backend, resolved through its provider on every access."""
        source = self._backend
        if hasattr(source, "get_or_compute"):
            return source

        try:
            backend = source()
        except Exception as e:
            self.logger.error("Cache backend provider failed", error=str(e))
            raise CacheInfrastructureError("Cache backend provider failed", cause=e)

        if not hasattr(backend, "get_or_compute"):
            raise CacheInfrastructureError(
                "Cache backend provider returned a non-backend",
                details={"type": type(backend).__name__},
            )
        return backend

    def policy_for(self, operation: Any) -> Optional[Policy]:
        return policy_of(operation, self.registry)

    def key_for(self, operation: Any, args: Sequence[Any], kwargs: Dict[str, Any],
                policy: Optional[Policy] = None) -> str:
        """Cache key of an invocation."""
        policy = policy or self.policy_for(operation)
        if policy is None:
            raise CacheInfrastructureError(f"Operation {operation_name(operation)} declares no cache policy")
        info = self.metadata.describe(operation, policy)
        arguments = self.metadata.arguments_of(operation, args, kwargs, policy)
        return self.key_builder.build(policy.namespace, arguments, info.key_positions)

    def invoke(self, operation: Callable, args: Sequence[Any] = (), kwargs: Optional[Dict[str, Any]] = None,
               proceed: Optional[Callable[[], Any]] = None) -> Any:
        """Invoke an operation through the cache."""
        kwargs = kwargs or {}
        if proceed is None:
            proceed = functools.partial(operation, *args, **kwargs)

        policy = self.policy_for(operation)
        if policy is None:
            return proceed()

        key = self.key_for(operation, args, kwargs, policy)
        return self.backend.get_or_compute(policy.ttl, key, self._resolver(operation, key, proceed))

    async def ainvoke(self, operation: Callable, args: Sequence[Any] = (), kwargs: Optional[Dict[str, Any]] = None,
                      proceed: Optional[Callable[[], Any]] = None) -> Any:
        """Coroutine counterpart of invoke for ``async def`` operations."""
        kwargs = kwargs or {}
        if proceed is None:
            proceed = functools.partial(operation, *args, **kwargs)

        policy = self.policy_for(operation)
        if policy is None:
            return await proceed()

        key = self.key_for(operation, args, kwargs, policy)
        backend = self.backend
        aget_or_compute = getattr(backend, "aget_or_compute", None)
        if aget_or_compute is None:
            raise CacheInfrastructureError(
                f"Backend {type(backend).__name__} cannot cache coroutine operations",
                details={"operation": operation_name(operation)},
            )
        return await aget_or_compute(policy.ttl, key, self._aresolver(operation, key, proceed))

    def wrap(self, func: Callable) -> Callable:
        """Return func with interception applied."""
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                return await self.ainvoke(func, args, kwargs)

            return _mark_wrapped(async_wrapper)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return self.invoke(func, args, kwargs)

        return _mark_wrapped(wrapper)

    def enhance(self, cls: type) -> type:
        """Subclass cls with every policy-bearing method intercepted."""
        namespace: Dict[str, Any] = {"__module__": cls.__module__, "__qualname__": cls.__qualname__}
        seen = set()
        for klass in cls.__mro__:
            if klass is object:
                continue
            for name, member in vars(klass).items():
                if name in seen:
                    continue
                seen.add(name)
                intercepted = self._intercept_member(name, member)
                if intercepted is not None:
                    namespace[name] = intercepted

        enhanced = type(cls.__name__, (cls,), namespace)
        self.logger.debug("Enhanced class", cls=cls.__qualname__, operations=sorted(set(namespace) - {"__module__", "__qualname__"}))
        return enhanced

    def _intercept_member(self, name: str, member: Any) -> Optional[Any]:
        if isinstance(member, staticmethod):
            func = member.__func__
            return staticmethod(self.wrap(func)) if self._declares_policy(func) else None

        if isinstance(member, classmethod):
            func = member.__func__
            if not self._declares_policy(func):
                return None
            return classmethod(self._method_wrapper(func))

        if inspect.isfunction(member) and not name.startswith("__") and self._declares_policy(member):
            return self._method_wrapper(member)
        return None

    def _declares_policy(self, func: Callable) -> bool:
        return self.policy_for(func) is not None

    def _method_wrapper(self, func: Callable) -> Callable:
        interceptor = self

        if inspect.iscoroutinefunction(func):
            async def async_method(owner, *args, **kwargs):
                return await interceptor.ainvoke(types.MethodType(func, owner), args, kwargs)

            return _mark_wrapped(functools.update_wrapper(async_method, func))

        def method(owner, *args, **kwargs):
            return interceptor.invoke(types.MethodType(func, owner), args, kwargs)

        return _mark_wrapped(functools.update_wrapper(method, func))

    def _resolver(self, operation: Any, key: str, proceed: Callable[[], Any]) -> Callable[[], Any]:
        name = operation_name(operation)
        calls = itertools.count()

        def resolve():
            if next(calls):
                self.logger.error("Resolver invoked more than once", operation=name, key=key)
                raise CacheInfrastructureError("Resolver invoked more than once", details={"operation": name, "key": key})
            self._trace(name, key)
            with resolution_context(name, key):
                return proceed()

        return resolve

    def _aresolver(self, operation: Any, key: str, proceed: Callable[[], Any]) -> Callable[[], Any]:
        name = operation_name(operation)
        calls = itertools.count()

        async def resolve():
            if next(calls):
                self.logger.error("Resolver invoked more than once", operation=name, key=key)
                raise CacheInfrastructureError("Resolver invoked more than once", details={"operation": name, "key": key})
            self._trace(name, key)
            with resolution_context(name, key):
                return await proceed()

        return resolve

    def _trace(self, name: str, key: str) -> None:
        self.logger.debug("Resolving cache key", operation=name, key=key)
        if self.on_resolve is not None:
            self.on_resolve(name, key)


def _mark_wrapped(wrapper: Callable) -> Callable:
    # functools.wraps copies the policy attribute and the name registry policies match on
    if POLICY_ATTRIBUTE in getattr(wrapper, "__dict__", {}):
        setattr(wrapper, POLICY_ATTRIBUTE, None)
    setattr(wrapper, WRAPPED_ATTRIBUTE, True)
    return wrapper


def memoize(backend: Optional[BackendSource] = None, *, config: Optional[MemoizeConfig] = None,
            registry: Optional[PolicyRegistry] = None, on_resolve: Optional[ResolveHook] = None) -> Callable:
    """Decorator factory intercepting ``@cacheable`` functions.

    Usage::

        cached = memoize(MemoryCache())

        @cached
        @cacheable("users", ttl=60)
        def load_user(user_id: str) -> dict:
            ...
    """
    interceptor = CacheInterceptor.from_config(config, backend=backend, registry=registry, on_resolve=on_resolve)
    return interceptor.wrap
