"""
Cache key derivation.
"""

from .builder import KEY_SEPARATOR, KeyBuilder, build_key, is_stable_rendering, render_argument

__all__ = ["KEY_SEPARATOR", "KeyBuilder", "build_key", "is_stable_rendering", "render_argument"]
