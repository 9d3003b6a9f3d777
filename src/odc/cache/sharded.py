"""
Sharded cache store.

Stores JSON values of any size in a backend whose entries are size-limited:

    set: value -> JSON -> compress -> split into chunks
         each chunk stored under fingerprint(index_key, i) with TTL t
         IndexRecord {timestamp, subs} stored under index_key with TTL t - 1
    get: read index -> read chunks in order -> join -> decompress -> JSON

The index always expires before its chunks, so a live index almost always
points at live chunks. When it doesn't (independent eviction, or racing
writers), get() returns None or raises CorruptPayloadError; it never returns
a partially assembled value.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import orjson

from odc.cache.base import KVBackend
from odc.cache.chunking import split
from odc.cache.codec import compress, decompress
from odc.cache.digest import fingerprint
from odc.config import get_settings
from odc.exceptions import CorruptPayloadError
from odc.logging import get_logger
from odc.types import CachedRecord, IndexRecord

logger = get_logger(__name__)


def index_ttl(ttl_seconds: int) -> int:
    """TTL for an index entry whose chunks live for ttl_seconds."""
    return max(0, ttl_seconds - 1)


class ShardedCache:
    """Compressed, chunked JSON cache on top of a KVBackend."""

    def __init__(self, backend: KVBackend, max_chunk_length: int | None = None) -> None:
        """Initialize the sharded cache.

        Args:
            backend: Capacity-limited store that holds index and chunk entries.
            max_chunk_length: Longest chunk written. Defaults to
                CACHE_MAX_CHUNK_LENGTH from settings.
        """
        if max_chunk_length is None:
            max_chunk_length = get_settings().CACHE_MAX_CHUNK_LENGTH
        if max_chunk_length < 1:
            raise ValueError(f"max_chunk_length must be >= 1, got {max_chunk_length}")
        self.backend = backend
        self.max_chunk_length = max_chunk_length

    async def set(
        self,
        key_parts: Sequence[Any],
        value: Any,
        ttl_seconds: int,
    ) -> IndexRecord:
        """Store a value under the fingerprint of key_parts.

        The TTL is clamped to the backend maximum before the index TTL is
        derived from it, so the index always expires before its chunks.
        Chunks are written first, the index last. If a write fails midway
        the chunks already written are left for TTL expiry.

        Raises:
            BackendCapacityExceededError: If a chunk does not fit in one entry.
            ValueError: If ttl_seconds is negative.
        """
        ttl = self.backend.effective_ttl(ttl_seconds)

        index_key = fingerprint(*key_parts)
        crushed = compress(orjson.dumps(value).decode("utf-8"))

        subs: list[str] = []
        for i, chunk in enumerate(split(crushed, self.max_chunk_length)):
            chunk_key = fingerprint(index_key, i)
            self.backend.check_entry(chunk_key, chunk)
            await self.backend.put(chunk_key, chunk, ttl)
            subs.append(chunk_key)

        record = IndexRecord.create(subs)
        await self.backend.put(
            index_key,
            orjson.dumps(record.to_dict()).decode("utf-8"),
            index_ttl(ttl),
        )

        logger.debug(
            "Cache set",
            key=index_key,
            chunks=len(subs),
            size=len(crushed),
            ttl=ttl,
        )
        return record

    async def get(self, key_parts: Sequence[Any]) -> CachedRecord | None:
        """Fetch and reassemble the value stored under key_parts.

        Returns:
            The cached record, or None on a miss (missing index or any
            missing chunk).

        Raises:
            CorruptPayloadError: If the index or assembled payload can't be decoded.
        """
        index_key = fingerprint(*key_parts)
        raw_index = await self.backend.get(index_key)
        if raw_index is None:
            logger.debug("Cache miss", key=index_key)
            return None

        try:
            record = IndexRecord.from_dict(orjson.loads(raw_index))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CorruptPayloadError(
                "Cache index record is unreadable",
                context={"key": index_key, "error": str(e)},
            ) from e

        parts: list[str] = []
        for chunk_key in record.subs:
            chunk = await self.backend.get(chunk_key)
            if chunk is None:
                logger.debug("Cache chunk missing", key=index_key, chunk=chunk_key)
                return None
            parts.append(chunk)

        text = decompress("".join(parts))
        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise CorruptPayloadError(
                "Cache payload is not valid JSON",
                context={"key": index_key, "error": str(e)},
            ) from e

        logger.debug("Cache hit", key=index_key, chunks=len(record.subs))
        return CachedRecord(timestamp=record.timestamp, subs=record.subs, data=data)


async def cache_get_handler(backend: KVBackend, *key_parts: Any) -> CachedRecord | None:
    """Get a sharded cache item; None on a miss."""
    return await ShardedCache(backend).get(key_parts)


async def cache_set_handler(
    backend: KVBackend,
    data: Any,
    ttl_seconds: int,
    *key_parts: Any,
) -> IndexRecord:
    """Compress data and spread it across as many cache entries as needed."""
    return await ShardedCache(backend).set(key_parts, data, ttl_seconds)
