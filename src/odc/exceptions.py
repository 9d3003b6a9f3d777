"""
Custom exception hierarchy for the OData connector.

All exceptions inherit from ODCError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class ODCError(Exception):
    """Base exception for all connector errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(ODCError):
    """Raised when configuration is invalid or missing.

    Examples:
        - No OData endpoint configured
        - No table selected before requesting schema or data
    """

    pass


class DataFetchError(ODCError):
    """Raised when fetching data from the OData service fails.

    Context should include:
        - url: The URL that was being fetched
        - status_code: HTTP status code if applicable
    """

    pass


class AuthenticationError(ODCError):
    """Raised when the API key is missing or rejected by the service."""

    pass


class SchemaError(ODCError):
    """Raised when the $metadata document does not describe the requested entity.

    Context should include:
        - entity: The requested entity set name
        - namespace: The schema namespace being searched
    """

    pass


class CacheError(ODCError):
    """Base class for cache layer failures."""

    pass


class CorruptPayloadError(CacheError):
    """Raised when assembled cache chunks cannot be decoded.

    Callers treat this as a cache miss; it must never reach the end user.
    """

    pass


class BackendCapacityExceededError(CacheError):
    """Raised when a single entry is larger than the backend accepts.

    Context should include:
        - key: The cache key being written
        - size: Encoded size of the entry in bytes
        - limit: The backend's per-entry limit
    """

    pass
