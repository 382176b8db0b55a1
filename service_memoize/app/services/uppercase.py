"""
Sample service used to exercise the caching surfaces.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Annotated, Callable, Optional

from shared.logging import get_logger

from ..policy import Key, cacheable


def utc_timestamp() -> str:
    """Current instant as an ISO-8601 string in UTC with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class UppercaseService(ABC):
    """Operations that upper-case their input, stamped with the current time."""

    @abstractmethod
    def apply(self, source: str) -> str:
        ...

    @abstractmethod
    def apply_with_prefix(self, source: str, prefix: str) -> str:
        ...


class ClockedUppercaseService(UppercaseService):
    """UppercaseService stamping results with a clock reading."""

    def __init__(self, clock: Optional[Callable[[], str]] = None):
        self.clock = clock or utc_timestamp
        self.logger = get_logger("memoize.services.uppercase")

    def run(self) -> None:
        self.logger.info("Running uppercase service")

    @cacheable(namespace="cache1", ttl=20)
    def apply(self, source: str) -> str:
        self.logger.debug("apply", source=source)
        return f"{self.clock()}:{str(source).upper()}"

    @cacheable(namespace="cache2", ttl=20)
    def apply_with_prefix(self, source: Annotated[str, Key], prefix: str) -> str:
        self.logger.debug("apply_with_prefix", source=source)
        return f"{prefix}@{self.clock()}:{str(source).upper()}"
