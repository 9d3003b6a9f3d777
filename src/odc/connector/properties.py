"""
Per-user property storage.

Holds what the connector remembers between requests: service URL, API key,
selected table, the table list and the cache TTL. Persisted as a JSON file.
"""

from __future__ import annotations

from pathlib import Path

import orjson

from odc.logging import get_logger

logger = get_logger(__name__)

URL_PROPERTY_KEY = "service_url"
AUTH_PROPERTY_KEY = "api_key"
TABLE_PROPERTY_KEY = "table"
TABLE_LIST_PROPERTY_KEY = "table_names"
CACHE_TTL_PROPERTY_KEY = "cache_ttl"


class PropertyStore:
    """String properties backed by a JSON file.

    With path=None the store lives only in memory.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._values: dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            data = orjson.loads(self.path.read_bytes())
        except orjson.JSONDecodeError:
            logger.warning("Ignoring unreadable properties file", path=str(self.path))
            return
        if isinstance(data, dict):
            self._values = {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(orjson.dumps(self._values, option=orjson.OPT_INDENT_2))

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._save()

    def delete_all(self) -> None:
        self._values.clear()
        self._save()
