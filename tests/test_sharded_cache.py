"""
Tests for the sharded cache store.
"""

from __future__ import annotations

import base64
import math
import time

import orjson
import pytest

from odc.cache.codec import compress
from odc.cache.digest import fingerprint
from odc.cache.kv_cache import InMemoryKVCache
from odc.cache.sharded import ShardedCache, cache_get_handler, cache_set_handler, index_ttl
from odc.exceptions import BackendCapacityExceededError, CorruptPayloadError


def compressed_length(value: object) -> int:
    """Length of the compressed form ShardedCache stores for value."""
    return len(compress(orjson.dumps(value).decode("utf-8")))


class TestShardedCacheRoundTrip:
    """Test set followed by get."""

    @pytest.mark.asyncio
    async def test_round_trip_values(self, backend: InMemoryKVCache) -> None:
        """Test that assorted JSON values survive set/get."""
        cache = ShardedCache(backend, max_chunk_length=64)
        values = [
            {},
            [],
            None,
            "",
            0,
            "héllo ✓",
            {"rows": [1, 2, 3]},
            {"nested": {"list": [{"a": 1}, {"b": [True, False, None]}]}},
            [{"id": i, "name": f"row {i}", "score": i * 1.5} for i in range(500)],
        ]

        for i, value in enumerate(values):
            keys = ["table", i]
            await cache.set(keys, value, 60)
            record = await cache.get(keys)
            assert record is not None
            assert record.data == value

    @pytest.mark.asyncio
    async def test_scenario_two_chunks(self, backend: InMemoryKVCache) -> None:
        """Test set/get of a value that splits into exactly two chunks."""
        value = {"rows": [1, 2, 3]}
        cache = ShardedCache(backend, max_chunk_length=math.ceil(compressed_length(value) / 2))
        before = int(time.time() * 1000)

        index = await cache.set(["tableA", "userX"], value, 60)
        record = await cache.get(["tableA", "userX"])

        assert len(index.subs) == 2
        assert record is not None
        assert record.subs == index.subs
        assert record.timestamp == index.timestamp
        assert before <= record.timestamp <= int(time.time() * 1000) + 1
        assert record.data == {"rows": [1, 2, 3]}
        assert record.to_dict() == {
            "timestamp": index.timestamp,
            "subs": list(index.subs),
            "data": {"rows": [1, 2, 3]},
        }

    @pytest.mark.asyncio
    async def test_subs_are_derived_chunk_keys(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=10)
        index = await cache.set(["k"], {"value": "x" * 100}, 60)

        index_key = fingerprint("k")
        assert list(index.subs) == [fingerprint(index_key, i) for i in range(len(index.subs))]

    @pytest.mark.asyncio
    async def test_index_is_stored_as_json(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=100)
        index = await cache.set(["k"], [1, 2], 60)

        stored = orjson.loads(await backend.get(fingerprint("k")))
        assert stored == {"timestamp": index.timestamp, "subs": list(index.subs)}

    @pytest.mark.asyncio
    async def test_overwrite_replaces_value(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=32)
        await cache.set(["k"], {"v": 1}, 60)
        await cache.set(["k"], {"v": 2}, 60)

        record = await cache.get(["k"])
        assert record is not None
        assert record.data == {"v": 2}

    @pytest.mark.asyncio
    async def test_empty_value_has_one_chunk(self, backend: InMemoryKVCache) -> None:
        """Test that even an empty value is stored as a non-empty archive."""
        cache = ShardedCache(backend, max_chunk_length=10_000)
        index = await cache.set(["empty"], "", 60)

        assert len(index.subs) == 1
        record = await cache.get(["empty"])
        assert record is not None
        assert record.data == ""


class TestShardedCacheChunkBoundary:
    """Test chunk counts around max_chunk_length."""

    @pytest.mark.asyncio
    async def test_exact_length_is_one_chunk(self, backend: InMemoryKVCache) -> None:
        value = {"boundary": list(range(20))}
        cache = ShardedCache(backend, max_chunk_length=compressed_length(value))

        index = await cache.set(["b"], value, 60)
        assert len(index.subs) == 1

    @pytest.mark.asyncio
    async def test_one_over_is_two_chunks(self, backend: InMemoryKVCache) -> None:
        value = {"boundary": list(range(20))}
        cache = ShardedCache(backend, max_chunk_length=compressed_length(value) - 1)

        index = await cache.set(["b"], value, 60)
        assert len(index.subs) == 2
        record = await cache.get(["b"])
        assert record is not None
        assert record.data == value


class TestShardedCacheExpiry:
    """Test TTL handling of index and chunks."""

    @pytest.mark.asyncio
    async def test_index_expires_one_second_before_chunks(
        self, backend: InMemoryKVCache
    ) -> None:
        cache = ShardedCache(backend, max_chunk_length=16)
        index = await cache.set(["tableA"], {"rows": list(range(50))}, 60)

        assert backend.ttl_of(fingerprint("tableA")) == 59
        assert len(index.subs) > 1
        for chunk_key in index.subs:
            assert backend.ttl_of(chunk_key) == 60

    def test_index_ttl_never_negative(self) -> None:
        assert index_ttl(60) == 59
        assert index_ttl(1) == 0
        assert index_ttl(0) == 0

    @pytest.mark.asyncio
    async def test_ttl_above_backend_limit_keeps_index_first(self, clock) -> None:
        """Test that clamping happens before the index TTL is derived."""
        backend = InMemoryKVCache(max_ttl_seconds=600, clock=clock)
        cache = ShardedCache(backend, max_chunk_length=16)
        index = await cache.set(["t"], {"rows": list(range(50))}, 1500)

        assert backend.ttl_of(fingerprint("t")) == 599
        for chunk_key in index.subs:
            assert backend.ttl_of(chunk_key) == 600

        clock.advance(599)
        assert await cache.get(["t"]) is None
        assert await backend.get(index.subs[0]) is not None

    @pytest.mark.asyncio
    async def test_zero_ttl_is_a_miss(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=100)
        await cache.set(["k"], {"a": 1}, 0)

        assert backend.ttl_of(fingerprint("k")) == 0
        assert await cache.get(["k"]) is None

    @pytest.mark.asyncio
    async def test_miss_after_index_expires(self, backend: InMemoryKVCache, clock) -> None:
        cache = ShardedCache(backend, max_chunk_length=100)
        index = await cache.set(["k"], {"a": 1}, 60)

        clock.advance(58)
        assert await cache.get(["k"]) is not None

        clock.advance(1)
        assert await cache.get(["k"]) is None
        # Chunks outlive the index
        assert await backend.get(index.subs[0]) is not None

    @pytest.mark.asyncio
    async def test_negative_ttl_rejected(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=100)
        with pytest.raises(ValueError):
            await cache.set(["k"], {"a": 1}, -1)
        assert backend.writes == 0


class TestShardedCacheMisses:
    """Test misses and partial data."""

    @pytest.mark.asyncio
    async def test_never_set_is_a_miss_without_writes(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=100)

        assert await cache.get(["neverSet"]) is None
        assert backend.writes == 0
        assert len(backend) == 0

    @pytest.mark.asyncio
    async def test_any_missing_chunk_is_a_miss(self) -> None:
        """Test that losing any single chunk never yields a partial value."""
        value = {"rows": [{"id": i, "text": "row %d" % i} for i in range(40)]}

        sizing = ShardedCache(InMemoryKVCache(), max_chunk_length=24)
        chunk_count = len((await sizing.set(["t"], value, 60)).subs)
        assert chunk_count > 2

        for missing in range(chunk_count):
            backend = InMemoryKVCache()
            cache = ShardedCache(backend, max_chunk_length=24)
            index = await cache.set(["t"], value, 60)

            assert backend.evict(index.subs[missing])
            assert await cache.get(["t"]) is None

    @pytest.mark.asyncio
    async def test_different_keys_do_not_collide(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=50)
        await cache.set(["tableA", "userX"], {"owner": "x"}, 60)
        await cache.set(["tableA", "userY"], {"owner": "y"}, 60)

        x = await cache.get(["tableA", "userX"])
        y = await cache.get(["tableA", "userY"])
        assert x is not None and x.data == {"owner": "x"}
        assert y is not None and y.data == {"owner": "y"}


class TestShardedCacheErrors:
    """Test corrupt payloads and capacity errors."""

    @pytest.mark.asyncio
    async def test_corrupt_chunk_raises(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=10_000)
        index = await cache.set(["k"], {"a": 1}, 60)

        await backend.put(index.subs[0], base64.b64encode(b"not a zip").decode(), 60)

        with pytest.raises(CorruptPayloadError):
            await cache.get(["k"])

    @pytest.mark.asyncio
    async def test_corrupt_index_raises(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=100)
        await backend.put(fingerprint("k"), "{not json", 60)

        with pytest.raises(CorruptPayloadError):
            await cache.get(["k"])

    @pytest.mark.asyncio
    async def test_index_missing_fields_raises(self, backend: InMemoryKVCache) -> None:
        cache = ShardedCache(backend, max_chunk_length=100)
        await backend.put(fingerprint("k"), '{"timestamp": 1}', 60)

        with pytest.raises(CorruptPayloadError):
            await cache.get(["k"])

    @pytest.mark.asyncio
    async def test_chunk_larger_than_backend_entry_fails(self, clock) -> None:
        """Test that a misconfigured chunk length fails loudly."""
        backend = InMemoryKVCache(max_entry_bytes=50, clock=clock)
        cache = ShardedCache(backend, max_chunk_length=100)

        with pytest.raises(BackendCapacityExceededError) as exc_info:
            await cache.set(["k"], {"data": "x" * 1000}, 60)

        assert exc_info.value.context["limit"] == 50
        assert await backend.get(fingerprint("k")) is None

    def test_invalid_chunk_length(self, backend: InMemoryKVCache) -> None:
        with pytest.raises(ValueError):
            ShardedCache(backend, max_chunk_length=0)


class TestCacheHandlers:
    """Test the module-level handler functions."""

    @pytest.mark.asyncio
    async def test_handlers_round_trip(self, backend: InMemoryKVCache) -> None:
        index = await cache_set_handler(backend, {"rows": [1, 2, 3]}, 60, "tableA", "userX")
        record = await cache_get_handler(backend, "tableA", "userX")

        assert record is not None
        assert record.subs == index.subs
        assert record.data == {"rows": [1, 2, 3]}

    @pytest.mark.asyncio
    async def test_handler_miss(self, backend: InMemoryKVCache) -> None:
        assert await cache_get_handler(backend, "neverSet") is None

    @pytest.mark.asyncio
    async def test_handlers_split_large_values(self, backend: InMemoryKVCache) -> None:
        """Test that values larger than one entry are spread over several."""
        # Random-looking rows compress poorly
        rows = [{"id": i, "hash": "".join(fingerprint(i, j) for j in range(4))} for i in range(3_000)]
        index = await cache_set_handler(backend, rows, 60, "big")

        assert len(index.subs) > 1
        record = await cache_get_handler(backend, "big")
        assert record is not None
        assert record.data == rows
