"""
Cache policy declaration and metadata.
"""

from .models import Key, KeyMarker, Policy, PolicyRegistry, normalize_ttl
from .metadata import (
    OperationInfo,
    OperationMetadata,
    cacheable,
    key_positions_of,
    operation_metadata,
    operation_name,
    policy_of,
)

__all__ = [
    "Key",
    "KeyMarker",
    "OperationInfo",
    "OperationMetadata",
    "Policy",
    "PolicyRegistry",
    "cacheable",
    "key_positions_of",
    "normalize_ttl",
    "operation_metadata",
    "operation_name",
    "policy_of",
]
