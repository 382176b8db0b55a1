"""
Cache key derivation.

Keys have the form ``<namespace>[.<arg>]...`` where each selected argument is
rendered by its canonical text. The format is part of the external contract:
backends and log readers may rely on it.
"""

import re
from typing import Any, Sequence

from shared.errors import UnstableKeyError
from shared.logging import get_logger

KEY_SEPARATOR = "."

# Default object reprs embed the memory address, e.g. <Foo object at 0x7f...>
_IDENTITY_PATTERN = re.compile(r" at 0x[0-9a-fA-F]+>")

logger = get_logger("memoize.keys")


def render_argument(value: Any) -> str:
    """Canonical text of a key argument."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_stable_rendering(text: str) -> bool:
    """False when the text depends on object identity."""
    return _IDENTITY_PATTERN.search(text) is None


def build_key(namespace: str, arguments: Sequence[Any], positions: Sequence[int], strict: bool = False) -> str:
    """Build the cache key for the selected arguments."""
    parts = [namespace]
    for position in positions:
        rendered = render_argument(arguments[position])
        if not is_stable_rendering(rendered):
            if strict:
                raise UnstableKeyError(
                    "Key argument renders with an object identity",
                    details={"namespace": namespace, "position": position, "rendered": rendered},
                )
            logger.warning(
                "Unstable key argument, entries will not be reused",
                namespace=namespace,
                position=position,
                argument_type=type(arguments[position]).__name__,
            )
        parts.append(rendered)
    return KEY_SEPARATOR.join(parts)


class KeyBuilder:
    """Key builder bound to a strictness setting."""

    def __init__(self, strict: bool = False):
        self.strict = strict

    def build(self, namespace: str, arguments: Sequence[Any], positions: Sequence[int]) -> str:
        return build_key(namespace, arguments, positions, strict=self.strict)

    __call__ = build
