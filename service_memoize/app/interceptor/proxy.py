"""
Cached proxy: a drop-in stand-in for a service object whose selected
operations go through a :class:`CacheInterceptor`.
"""

import inspect
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from shared.errors import CacheInfrastructureError
from shared.logging import get_logger

from ..policy.models import PolicyRegistry
from .interceptor import BackendSource, CacheInterceptor

OperationRef = Union[str, type, Any]

_PROXY_ATTRIBUTES = frozenset({"_target", "_interceptor", "_operations", "_methods"})

logger = get_logger("memoize.proxy")


def public_operations(cls: type) -> List[str]:
    """Names of the public methods of a class or interface."""
    names = []
    for name in dir(cls):
        if name.startswith("_"):
            continue
        member = inspect.getattr_static(cls, name)
        if isinstance(member, (staticmethod, classmethod)) or inspect.isfunction(member):
            names.append(name)
    return names


class CachedProxy:
    """Stand-in exposing the target's operations with interception applied.

    ``operations`` selects what is intercepted: operation names, functions,
    or interface classes whose public methods are all included. When omitted,
    every public method of the target is intercepted. Attributes outside the
    selection are served by the target unchanged.
    """

    def __init__(
        self,
        target: Any,
        backend: Optional[BackendSource] = None,
        operations: Optional[Iterable[OperationRef]] = None,
        registry: Optional[PolicyRegistry] = None,
        interceptor: Optional[CacheInterceptor] = None,
    ):
        if interceptor is None:
            if backend is None:
                raise CacheInfrastructureError("CachedProxy needs a backend or an interceptor")
            interceptor = CacheInterceptor(backend, registry=registry)

        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_interceptor", interceptor)
        object.__setattr__(self, "_operations", self._select(target, operations))
        object.__setattr__(self, "_methods", {})
        logger.debug("Created cached proxy", target=type(target).__qualname__, operations=sorted(self._operations))

    @staticmethod
    def _select(target: Any, operations: Optional[Iterable[OperationRef]]) -> FrozenSet[str]:
        if operations is None:
            return frozenset(public_operations(type(target)))

        names = set()
        for ref in operations:
            if isinstance(ref, str):
                candidates = [ref]
            elif isinstance(ref, type):
                candidates = public_operations(ref)
            else:
                candidates = [getattr(ref, "__name__", repr(ref))]

            for name in candidates:
                if not callable(getattr(target, name, None)):
                    raise CacheInfrastructureError(
                        f"{type(target).__name__} has no operation {name!r}",
                        details={"operation": name},
                    )
                names.add(name)
        return frozenset(names)

    @property
    def __class__(self):
        return type(self._target)

    def __getattr__(self, name: str) -> Any:
        if name in _PROXY_ATTRIBUTES:
            raise AttributeError(name)

        attribute = getattr(self._target, name)
        if name not in self._operations or not callable(attribute):
            return attribute

        methods: Dict[str, Any] = self._methods
        method = methods.get(name)
        if method is None:
            method = self._interceptor.wrap(attribute)
            methods[name] = method
        return method

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._target, name, value)

    def __repr__(self) -> str:
        return f"CachedProxy({self._target!r})"


def cached_instance(
    target: Any,
    backend: BackendSource,
    *operations: OperationRef,
    registry: Optional[PolicyRegistry] = None,
) -> Any:
    """Wrap target so that the given operations (all when none given) are cached."""
    return CachedProxy(target, backend, operations=operations or None, registry=registry)
