"""
Key-value cache backends.

This module implements:
- InMemoryKVCache: dict-based backend for tests and one-shot runs
  - Injectable clock for deterministic expiry
  - Hit/miss/write counters
- SQLiteKVCache: async SQLite-backed backend using aiosqlite
  - Survives between CLI invocations
  - Expired rows are ignored on read and removed by purge_expired()

Both enforce the per-entry size limit and clamp TTLs to the backend maximum.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from odc.cache.base import DEFAULT_MAX_ENTRY_BYTES, DEFAULT_MAX_TTL_SECONDS, KVBackend
from odc.logging import get_logger

logger = get_logger(__name__)

# Stay well below SQLite's bound-parameter limit
_SQLITE_BATCH = 500


@dataclass
class _Entry:
    value: str
    ttl_seconds: int
    expires_at: float


class InMemoryKVCache(KVBackend):
    """Dict-backed cache backend.

    An entry written with TTL t is readable while clock() < written_at + t,
    so TTL 0 entries are never readable.
    """

    def __init__(
        self,
        max_entry_bytes: int = DEFAULT_MAX_ENTRY_BYTES,
        max_ttl_seconds: int = DEFAULT_MAX_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(max_entry_bytes=max_entry_bytes, max_ttl_seconds=max_ttl_seconds)
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self.hits = 0
        self.misses = 0
        self.writes = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _lookup(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    async def get(self, key: str) -> str | None:
        return self._lookup(key)

    async def get_all(self, keys: Iterable[str]) -> dict[str, str]:
        result: dict[str, str] = {}
        for key in keys:
            value = self._lookup(key)
            if value is not None:
                result[key] = value
        return result

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        ttl = self.effective_ttl(ttl_seconds)
        self.check_entry(key, value)
        self._entries[key] = _Entry(value, ttl, self._clock() + ttl)
        self.writes += 1

    async def put_all(self, values: Mapping[str, str], ttl_seconds: int) -> None:
        ttl = self.effective_ttl(ttl_seconds)
        for key, value in values.items():
            self.check_entry(key, value)
        expires_at = self._clock() + ttl
        for key, value in values.items():
            self._entries[key] = _Entry(value, ttl, expires_at)
            self.writes += 1

    def ttl_of(self, key: str) -> int | None:
        """TTL the key was last written with, or None if never written."""
        entry = self._entries.get(key)
        return entry.ttl_seconds if entry else None

    def evict(self, key: str) -> bool:
        """Drop a key as if the backend had evicted it."""
        return self._entries.pop(key, None) is not None


class SQLiteKVCache(KVBackend):
    """Persistent cache backend stored in a single SQLite file.

    Expiry uses wall-clock time so entries stay valid across processes.
    """

    def __init__(
        self,
        db_path: str | Path,
        max_entry_bytes: int = DEFAULT_MAX_ENTRY_BYTES,
        max_ttl_seconds: int = DEFAULT_MAX_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(max_entry_bytes=max_entry_bytes, max_ttl_seconds=max_ttl_seconds)
        self.db_path = Path(db_path)
        self._clock = clock
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                ttl_seconds INTEGER NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv(expires_at)"
        )
        await self._db.commit()
        logger.debug("SQLite cache initialized", db_path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteKVCache.init() must be awaited before use")
        return self._db

    async def get(self, key: str) -> str | None:
        async with self._conn().execute(
            "SELECT value FROM kv WHERE key = ? AND expires_at > ?",
            (key, self._clock()),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def get_all(self, keys: Iterable[str]) -> dict[str, str]:
        key_list = list(dict.fromkeys(keys))
        now = self._clock()
        result: dict[str, str] = {}
        for start in range(0, len(key_list), _SQLITE_BATCH):
            batch = key_list[start:start + _SQLITE_BATCH]
            placeholders = ",".join("?" * len(batch))
            async with self._conn().execute(
                f"SELECT key, value FROM kv WHERE key IN ({placeholders}) AND expires_at > ?",
                (*batch, now),
            ) as cursor:
                async for row in cursor:
                    result[row[0]] = row[1]
        return result

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.put_all({key: value}, ttl_seconds)

    async def put_all(self, values: Mapping[str, str], ttl_seconds: int) -> None:
        ttl = self.effective_ttl(ttl_seconds)
        for key, value in values.items():
            self.check_entry(key, value)
        expires_at = self._clock() + ttl
        db = self._conn()
        await db.executemany(
            "INSERT OR REPLACE INTO kv (key, value, ttl_seconds, expires_at) VALUES (?, ?, ?, ?)",
            [(key, value, ttl, expires_at) for key, value in values.items()],
        )
        await db.commit()

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        db = self._conn()
        cursor = await db.execute("DELETE FROM kv WHERE expires_at <= ?", (self._clock(),))
        await db.commit()
        removed = cursor.rowcount
        if removed:
            logger.debug("Purged expired cache entries", count=removed)
        return removed
