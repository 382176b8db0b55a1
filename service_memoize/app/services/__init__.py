"""
Sample services wired through the cache.
"""

from .uppercase import ClockedUppercaseService, UppercaseService, utc_timestamp

__all__ = ["ClockedUppercaseService", "UppercaseService", "utc_timestamp"]
