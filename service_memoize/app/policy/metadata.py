"""
Policy declaration and per-operation metadata.

An operation opts into caching with ``@cacheable``; its key parameters are
either annotated with ``Annotated[T, Key]``, named through ``key=``, or given
as explicit positions through a :class:`PolicyRegistry`. When none are
tagged, every parameter takes part in the key.
"""

import inspect
import re
import threading
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union, get_args, get_origin

from shared.errors import CacheInfrastructureError, PolicyError
from shared.logging import get_logger

from .models import POLICY_ATTRIBUTE, WRAPPED_ATTRIBUTE, KeyMarker, Policy, PolicyRegistry, TtlLike

logger = get_logger("memoize.policy")

# Annotated[<type>, ..., Key] written as text, optionally module-qualified
_KEY_ANNOTATION_TEXT = re.compile(r"^\s*(?:\w+\.)*Annotated\[.*,\s*(?:\w+\.)*Key\s*(?:,[^\]]*)?\]\s*$")


def cacheable(namespace: str, ttl: TtlLike = 0, key: Union[str, Iterable[str], None] = None) -> Callable:
    """Declare a caching policy on an operation.

    The function is returned unchanged; the policy only takes effect when the
    operation is called through an interceptor or a cached proxy.
    """
    if isinstance(key, str):
        key = (key,)
    policy = Policy(namespace=namespace, ttl=ttl, key_names=tuple(key or ()))

    def decorator(func):
        target = func.__func__ if isinstance(func, (staticmethod, classmethod)) else func
        if policy.key_names:
            try:
                parameters = inspect.signature(target).parameters
            except (TypeError, ValueError) as exc:
                raise CacheInfrastructureError(f"Cannot introspect operation {operation_name(target)}", cause=exc)
            unknown = [name for name in policy.key_names if name not in parameters]
            if unknown:
                raise PolicyError(
                    "Key parameters not found in signature",
                    details={"operation": operation_name(target), "unknown": unknown},
                )
        setattr(target, POLICY_ATTRIBUTE, policy)
        return func

    return decorator


def operation_name(operation: Any) -> str:
    """Human readable identity of an operation."""
    func = getattr(operation, "__func__", operation)
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


def policy_of(operation: Any, registry: Optional[PolicyRegistry] = None) -> Optional[Policy]:
    """Return the policy declared for an operation, if any.

    A registry entry for the operation's name takes precedence over a
    decorator-attached policy. Interceptor-made wrappers declare none, so an
    operation is never intercepted twice.
    """
    if getattr(operation, WRAPPED_ATTRIBUTE, False):
        return None

    if registry is not None:
        name = getattr(operation, "__name__", None)
        if name is not None and name in registry:
            return registry.get(name)

    policy = getattr(operation, POLICY_ATTRIBUTE, None)
    return policy if isinstance(policy, Policy) else None


def is_key_annotation(annotation: Any) -> bool:
    """True when a parameter annotation carries the Key marker.

    Unresolved string annotations (``from __future__ import annotations``)
    are matched on their text.
    """
    if isinstance(annotation, str):
        return _KEY_ANNOTATION_TEXT.match(annotation) is not None
    if get_origin(annotation) is not Annotated:
        return False
    return any(isinstance(meta, KeyMarker) or meta is KeyMarker for meta in get_args(annotation)[1:])


@dataclass(frozen=True)
class OperationInfo:
    """Introspected shape of an operation."""

    name: str
    signature: inspect.Signature
    parameter_names: Tuple[str, ...]
    key_positions: Tuple[int, ...]


class OperationMetadata:
    """Publish-once cache of introspected operation metadata."""

    def __init__(self):
        self._entries: Dict[Tuple[Any, ...], OperationInfo] = {}
        self._lock = threading.Lock()

    def describe(self, operation: Any, policy: Optional[Policy] = None) -> OperationInfo:
        identity = (getattr(operation, "__func__", operation), hasattr(operation, "__self__"), policy)
        info = self._entries.get(identity)
        if info is None:
            computed = self._inspect(operation, policy)
            with self._lock:
                info = self._entries.setdefault(identity, computed)
        return info

    def key_positions_of(self, operation: Any, policy: Optional[Policy] = None) -> Tuple[int, ...]:
        """Ascending parameter indices whose arguments form the cache key."""
        if policy is None:
            policy = policy_of(operation)
        return self.describe(operation, policy).key_positions

    def arguments_of(self, operation: Any, args: Sequence[Any], kwargs: Dict[str, Any],
                     policy: Optional[Policy] = None) -> List[Any]:
        """Argument vector in parameter order, defaults applied.

        Raises the same ``TypeError`` a direct call would for arguments that
        do not bind.
        """
        info = self.describe(operation, policy)
        bound = info.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        arguments = []
        for name in info.parameter_names:
            value = bound.arguments[name]
            if info.signature.parameters[name].kind is inspect.Parameter.VAR_KEYWORD:
                # Keyword order must not change the key
                value = dict(sorted(value.items()))
            arguments.append(value)
        return arguments

    def __len__(self) -> int:
        return len(self._entries)

    def _inspect(self, operation: Any, policy: Optional[Policy]) -> OperationInfo:
        name = operation_name(operation)
        try:
            signature = self._signature(operation)
        except (TypeError, ValueError, SyntaxError) as exc:
            logger.error("Cannot introspect operation", operation=name, error=str(exc))
            raise CacheInfrastructureError(f"Cannot introspect operation {name}", cause=exc)

        parameters = list(signature.parameters.values())
        names = tuple(parameter.name for parameter in parameters)
        key_names = policy.key_names if policy else ()
        explicit = policy.key_arg_positions if policy else ()

        unknown = [key_name for key_name in key_names if key_name not in names]
        if unknown:
            raise PolicyError("Key parameters not found in signature", details={"operation": name, "unknown": unknown})

        tagged = set()
        for index, parameter in enumerate(parameters):
            if is_key_annotation(parameter.annotation) or parameter.name in key_names:
                tagged.add(index)

        for position in explicit:
            if position >= len(parameters):
                raise PolicyError(
                    "Key position out of range",
                    details={"operation": name, "position": position, "parameters": len(parameters)},
                )
            tagged.add(position)

        positions = tuple(sorted(tagged)) if tagged else tuple(range(len(parameters)))
        logger.debug("Derived key positions", operation=name, positions=list(positions))
        return OperationInfo(name=name, signature=signature, parameter_names=names, key_positions=positions)

    @staticmethod
    def _signature(operation: Any) -> inspect.Signature:
        try:
            return inspect.signature(operation, eval_str=True)
        except NameError as exc:
            # Names imported only under TYPE_CHECKING; keep the annotations as text
            logger.debug("Unresolved annotations", operation=operation_name(operation), error=str(exc))
            return inspect.signature(operation)


# Global metadata cache
operation_metadata = OperationMetadata()


def key_positions_of(operation: Any) -> Tuple[int, ...]:
    """Key positions of an operation from the global metadata cache."""
    return operation_metadata.key_positions_of(operation)
