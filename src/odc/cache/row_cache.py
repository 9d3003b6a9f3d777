"""
Row-oriented cache variant.

Instead of compressing one blob, table rows are grouped so each group's JSON
fits a backend entry. Group size is derived from the first row's size times a
safety multiplier. The index entry holds the comma-joined group keys in write
order and shares the groups' TTL.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

import orjson

from odc.cache.base import KVBackend, entry_size
from odc.config import get_settings
from odc.exceptions import CorruptPayloadError
from odc.logging import get_logger
from odc.types import generate_id

logger = get_logger(__name__)

KEY_SEPARATOR = ","


def estimate_row_bytes(row: Any, multiplier: float) -> float:
    """Estimated serialized size of one row, inflated by multiplier."""
    return entry_size(orjson.dumps(row).decode("utf-8")) * multiplier


def rows_per_chunk(sample_row: Any, max_bytes_per_entry: int, multiplier: float) -> int:
    """How many rows like sample_row to put in one entry (at least 1)."""
    estimate = estimate_row_bytes(sample_row, multiplier)
    if estimate <= 0:
        return 1
    # n rows serialize to n * (row + 1) + 1 bytes: one comma per row, plus brackets
    return max(1, math.floor((max_bytes_per_entry - 1) / (estimate + 1)))


class RowShardedCache:
    """Caches a list of rows as several JSON row groups."""

    def __init__(self, backend: KVBackend, row_size_multiplier: float | None = None) -> None:
        if row_size_multiplier is None:
            row_size_multiplier = get_settings().ROW_SIZE_MULTIPLIER
        if row_size_multiplier < 1.0:
            raise ValueError(
                f"row_size_multiplier must be >= 1.0, got {row_size_multiplier}"
            )
        self.backend = backend
        self.row_size_multiplier = row_size_multiplier

    def chunk_rows(self, rows: Sequence[Any], max_bytes_per_entry: int) -> dict[str, str]:
        """Group rows into serialized chunks keyed by fresh random IDs.

        The returned mapping preserves group order.
        """
        if not rows:
            return {}

        per_chunk = rows_per_chunk(rows[0], max_bytes_per_entry, self.row_size_multiplier)
        chunks: dict[str, str] = {}
        for start in range(0, len(rows), per_chunk):
            group = list(rows[start:start + per_chunk])
            chunks[generate_id("rows")] = orjson.dumps(group).decode("utf-8")
        return chunks

    async def set_rows(
        self,
        entity_key: str,
        rows: Sequence[Any],
        max_bytes_per_entry: int,
        ttl_seconds: int,
    ) -> list[str]:
        """Store rows under entity_key. Returns the chunk keys in order.

        Raises:
            BackendCapacityExceededError: If a group outgrows its entry
                (rows much larger than the first one).
        """
        chunks = self.chunk_rows(rows, max_bytes_per_entry)
        for key, value in chunks.items():
            self.backend.check_entry(key, value)

        keys = list(chunks)
        if chunks:
            await self.backend.put_all(chunks, ttl_seconds)
        await self.backend.put(entity_key, KEY_SEPARATOR.join(keys), ttl_seconds)

        logger.debug(
            "Cached rows",
            entity=entity_key,
            rows=len(rows),
            chunks=len(keys),
            ttl=ttl_seconds,
        )
        return keys

    async def get_rows(self, entity_key: str) -> list[Any] | None:
        """Reassemble rows stored by set_rows, in their original order.

        Returns:
            The rows, or None if the index or any group is missing.

        Raises:
            CorruptPayloadError: If a group is not a JSON array.
        """
        joined = await self.backend.get(entity_key)
        if joined is None:
            logger.debug("Row cache miss", entity=entity_key)
            return None
        if not joined:
            return []

        keys = joined.split(KEY_SEPARATOR)
        found = await self.backend.get_all(keys)

        rows: list[Any] = []
        for key in keys:
            raw = found.get(key)
            if raw is None:
                logger.debug("Row cache chunk missing", entity=entity_key, chunk=key)
                return None
            try:
                group = orjson.loads(raw)
            except orjson.JSONDecodeError as e:
                raise CorruptPayloadError(
                    "Cached row group is not valid JSON",
                    context={"entity": entity_key, "chunk": key, "error": str(e)},
                ) from e
            if not isinstance(group, list):
                raise CorruptPayloadError(
                    "Cached row group is not a list",
                    context={"entity": entity_key, "chunk": key},
                )
            rows.extend(group)

        logger.debug("Row cache hit", entity=entity_key, rows=len(rows), chunks=len(keys))
        return rows
