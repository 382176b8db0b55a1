"""
Shared error handling for the memoization layer.

Operation failures raised by wrapped services are never represented here:
they reach the caller unchanged. These types describe failures of the
caching machinery itself.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class MemoizeException(Exception):
    """Base exception for the memoization layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class CacheInfrastructureError(MemoizeException):
    """The interceptor could not complete dispatch."""

    def __init__(
        self,
        message: str = "Cache infrastructure failure",
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
        code: str = "CACHE_INFRASTRUCTURE_ERROR",
    ):
        details = dict(details or {})
        if cause is not None:
            details.setdefault("cause", f"{type(cause).__name__}: {cause}")
        super().__init__(code, message, details)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class PolicyError(CacheInfrastructureError):
    """Invalid caching declaration on an operation."""

    def __init__(self, message: str = "Invalid cache policy", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, code="CACHE_POLICY_ERROR")


class UnstableKeyError(CacheInfrastructureError):
    """A key argument renders with an identity-dependent text."""

    def __init__(self, message: str = "Unstable key argument", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, code="CACHE_UNSTABLE_KEY")


class CacheBackendError(MemoizeException):
    """The cache backend could not complete get_or_compute."""

    def __init__(
        self,
        backend: str,
        message: str = "Cache backend error",
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("CACHE_BACKEND_ERROR", f"{backend}: {message}", details)
        self.backend = backend
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
