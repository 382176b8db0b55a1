"""
Policy data models for the memoization service.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, Optional, Tuple, Union

from shared.errors import PolicyError

TtlLike = Union[int, float, timedelta]

POLICY_ATTRIBUTE = "__memo_policy__"

# Set on interceptor-made wrappers; a marked callable is never intercepted again
WRAPPED_ATTRIBUTE = "__memo_wrapped__"


class KeyMarker:
    """Marks a parameter as contributing to the cache key.

    Used through ``typing.Annotated``::

        def apply_with_prefix(self, source: Annotated[str, Key], prefix: str) -> str:
            ...
    """

    _instance: Optional["KeyMarker"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Key"


Key = KeyMarker()


def normalize_ttl(ttl: TtlLike) -> float:
    """Return the TTL in seconds, rejecting negative or non-numeric values."""
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    elif isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise PolicyError("TTL must be a number of seconds or a timedelta", details={"ttl": repr(ttl)})
    else:
        seconds = float(ttl)

    if seconds < 0:
        raise PolicyError("TTL must not be negative", details={"ttl": seconds})
    return seconds


@dataclass(frozen=True)
class Policy:
    """Caching policy attached to an operation."""

    namespace: str
    ttl: float = 0.0
    key_arg_positions: Tuple[int, ...] = ()
    key_names: Tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.namespace, str) or not self.namespace:
            raise PolicyError("Namespace must be a non-empty string", details={"namespace": repr(self.namespace)})
        object.__setattr__(self, "ttl", normalize_ttl(self.ttl))

        positions = tuple(self.key_arg_positions)
        for position in positions:
            if isinstance(position, bool) or not isinstance(position, int) or position < 0:
                raise PolicyError(
                    "Key positions must be non-negative integers",
                    details={"namespace": self.namespace, "position": repr(position)},
                )
        object.__setattr__(self, "key_arg_positions", positions)
        object.__setattr__(self, "key_names", tuple(self.key_names))

    @property
    def ttl_delta(self) -> timedelta:
        """TTL as a typed duration."""
        return timedelta(seconds=self.ttl)

    @property
    def has_explicit_keys(self) -> bool:
        return bool(self.key_arg_positions or self.key_names)


@dataclass
class PolicyRegistry:
    """Policies declared at wiring time, keyed by operation name.

    Lets operations be made cacheable without decorating their source, e.g.
    for third-party services::

        registry = PolicyRegistry()
        registry.register("apply", namespace="cache1", ttl=20)
    """

    policies: Dict[str, Policy] = field(default_factory=dict)

    def register(
        self,
        operation: str,
        namespace: str,
        ttl: TtlLike = 0,
        key_positions: Iterable[int] = (),
    ) -> Policy:
        """Declare the policy for an operation name."""
        policy = Policy(namespace=namespace, ttl=ttl, key_arg_positions=tuple(key_positions))
        self.policies[operation] = policy
        return policy

    def get(self, operation: str) -> Optional[Policy]:
        return self.policies.get(operation)

    def __contains__(self, operation: str) -> bool:
        return operation in self.policies

    def __len__(self) -> int:
        return len(self.policies)
