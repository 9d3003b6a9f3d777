"""
Base classes for caching.

KVBackend is the interface the sharded cache is built on: a string-keyed,
string-valued store where every write carries a TTL and every entry has a
size ceiling. Reads of missing or expired keys return None instead of raising.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from odc.exceptions import BackendCapacityExceededError

DEFAULT_MAX_ENTRY_BYTES = 100_000
DEFAULT_MAX_TTL_SECONDS = 21_600


def entry_size(value: str) -> int:
    """Size of a value as the backend accounts for it (UTF-8 bytes)."""
    return len(value.encode("utf-8"))


class KVBackend(ABC):
    """Abstract capacity-bounded key-value store with mandatory TTLs."""

    def __init__(
        self,
        max_entry_bytes: int = DEFAULT_MAX_ENTRY_BYTES,
        max_ttl_seconds: int = DEFAULT_MAX_TTL_SECONDS,
    ) -> None:
        self.max_entry_bytes = max_entry_bytes
        self.max_ttl_seconds = max_ttl_seconds

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get a value, or None if missing or expired."""
        ...

    @abstractmethod
    async def get_all(self, keys: Iterable[str]) -> dict[str, str]:
        """Get several values. Only present keys appear in the result."""
        ...

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value for ttl_seconds."""
        ...

    @abstractmethod
    async def put_all(self, values: Mapping[str, str], ttl_seconds: int) -> None:
        """Store several values with the same TTL."""
        ...

    def check_entry(self, key: str, value: str) -> None:
        """Reject values larger than the per-entry limit.

        Raises:
            BackendCapacityExceededError: If the value does not fit.
        """
        size = entry_size(value)
        if size > self.max_entry_bytes:
            raise BackendCapacityExceededError(
                "Cache entry exceeds backend capacity",
                context={"key": key, "size": size, "limit": self.max_entry_bytes},
            )

    def effective_ttl(self, ttl_seconds: int) -> int:
        """Clamp a requested TTL to what the backend honors.

        Raises:
            ValueError: If the TTL is negative.
        """
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")
        return min(int(ttl_seconds), self.max_ttl_seconds)
