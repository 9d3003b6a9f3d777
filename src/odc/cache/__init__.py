"""
Cache package.

This package provides:
- Backend interface (base.py) and backends (kv_cache.py): in-memory and SQLite
- Fingerprinting (digest.py), compression (codec.py) and chunking (chunking.py)
- ShardedCache (sharded.py): compressed values spread over size-limited entries
- RowShardedCache (row_cache.py): table rows grouped by estimated byte size
"""

from odc.cache.base import KVBackend
from odc.cache.kv_cache import InMemoryKVCache, SQLiteKVCache
from odc.cache.row_cache import RowShardedCache
from odc.cache.sharded import ShardedCache, cache_get_handler, cache_set_handler

__all__ = [
    "InMemoryKVCache",
    "KVBackend",
    "RowShardedCache",
    "SQLiteKVCache",
    "ShardedCache",
    "cache_get_handler",
    "cache_set_handler",
]
