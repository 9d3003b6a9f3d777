"""
Connector request handlers.

Implements the reporting host's connector contract:
- get_auth_type / set_credentials / is_auth_valid / reset_auth
- configure: pick a table and a cache TTL
- get_schema: host fields for the selected table
- get_data: formatted rows for requested fields, served from cache when possible

Every fallible handler returns Ok or Err. Exceptions from the OData client
are converted at this boundary and never reach the host.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from odc.cache.base import KVBackend
from odc.cache.digest import fingerprint
from odc.cache.kv_cache import InMemoryKVCache
from odc.cache.row_cache import RowShardedCache
from odc.cache.sharded import ShardedCache
from odc.config import Settings, get_settings
from odc.connector.fields import build_fields, format_rows, select_fields
from odc.connector.properties import (
    AUTH_PROPERTY_KEY,
    CACHE_TTL_PROPERTY_KEY,
    TABLE_LIST_PROPERTY_KEY,
    TABLE_PROPERTY_KEY,
    URL_PROPERTY_KEY,
    PropertyStore,
)
from odc.exceptions import (
    AuthenticationError,
    BackendCapacityExceededError,
    ConfigurationError,
    CorruptPayloadError,
    DataFetchError,
    ODCError,
    SchemaError,
)
from odc.logging import get_logger, log_context
from odc.odata.client import ODataClient
from odc.result import Err, ErrorKind, Ok, Result
from odc.types import EntitySchema, FieldSpec, ODataRow

logger = get_logger(__name__)

AUTH_TYPE = "KEY"
TABLE_SEPARATOR = ","

ClientFactory = Callable[[str, "str | None"], ODataClient]


def validate_cache_ttl(value: Any, settings: Settings | None = None) -> int:
    """Convert a user-supplied TTL in minutes to seconds.

    Values that aren't integers, or fall outside 0..MAX_CACHE_TTL_MINUTES,
    fall back to DEFAULT_CACHE_TTL_MINUTES.
    """
    settings = settings or get_settings()
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        minutes = settings.DEFAULT_CACHE_TTL_MINUTES
    if minutes < 0 or minutes > settings.MAX_CACHE_TTL_MINUTES:
        minutes = settings.DEFAULT_CACHE_TTL_MINUTES
    return minutes * 60


def _to_err(error: ODCError) -> Err:
    """Map a connector exception to a user-facing error."""
    if isinstance(error, SchemaError):
        return Err(ErrorKind.USER, error.message, debug=str(error))
    if isinstance(error, (ConfigurationError, AuthenticationError)):
        return Err(ErrorKind.CONFIG, error.message, debug=str(error))
    if isinstance(error, DataFetchError):
        return Err(
            ErrorKind.USER,
            "Unable to read from the OData service. Check the URL and your key.",
            debug=str(error),
        )
    return Err(ErrorKind.USER, error.message, debug=str(error))


class Connector:
    """Stateful connector bound to one user's properties and cache."""

    def __init__(
        self,
        settings: Settings | None = None,
        properties: PropertyStore | None = None,
        backend: KVBackend | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize the connector.

        Args:
            settings: Settings; defaults to get_settings().
            properties: User property store; defaults to an in-memory store.
            backend: Cache backend; defaults to an in-memory backend sized
                from settings.
            client_factory: Builds an ODataClient from (url, key).
        """
        self.settings = settings or get_settings()
        self.properties = properties or PropertyStore()
        self.backend = backend or InMemoryKVCache(
            max_entry_bytes=self.settings.CACHE_MAX_ENTRY_BYTES,
            max_ttl_seconds=self.settings.CACHE_MAX_TTL_SECONDS,
        )
        self.sharded_cache = ShardedCache(
            self.backend, max_chunk_length=self.settings.CACHE_MAX_CHUNK_LENGTH
        )
        self.row_cache = RowShardedCache(
            self.backend, row_size_multiplier=self.settings.ROW_SIZE_MULTIPLIER
        )
        self._client_factory = client_factory or (lambda url, key: ODataClient(url, key))

    # ==================== Properties ====================

    @property
    def service_url(self) -> str:
        return self.properties.get(URL_PROPERTY_KEY) or self.settings.ODATA_ENDPOINT

    def set_service_url(self, url: str) -> None:
        """Point the connector at a different OData service root."""
        self.properties.set(URL_PROPERTY_KEY, url.rstrip("/"))

    @property
    def cache_ttl(self) -> int:
        """Data cache TTL in seconds."""
        stored = self.properties.get(CACHE_TTL_PROPERTY_KEY)
        try:
            return int(stored) if stored is not None else self.settings.default_cache_ttl_seconds
        except ValueError:
            return self.settings.default_cache_ttl_seconds

    @property
    def api_key(self) -> str | None:
        return self.properties.get(AUTH_PROPERTY_KEY) or self.settings.ODATA_API_KEY

    def _require_api_key(self) -> str:
        api_key = self.api_key
        if not api_key:
            raise AuthenticationError(
                "No authentication key configured. Run the setup steps first.",
                context={"property": AUTH_PROPERTY_KEY},
            )
        return api_key

    def _require(self, key: str, what: str) -> str:
        value = self.properties.get(key)
        if not value:
            raise ConfigurationError(
                f"No {what} configured. Run the setup steps first.",
                context={"property": key},
            )
        return value

    @asynccontextmanager
    async def _open_client(self, api_key: str | None) -> AsyncIterator[ODataClient]:
        client = self._client_factory(self.service_url, api_key)
        try:
            yield client
        finally:
            await client.close()

    # ==================== Authentication ====================

    def get_auth_type(self) -> str:
        """The connector authenticates with a user-supplied API key."""
        return AUTH_TYPE

    def reset_auth(self) -> None:
        """Forget the key and everything configured with it."""
        logger.debug("Resetting authentication")
        self.properties.delete_all()

    async def set_credentials(self, api_key: str) -> Result[None]:
        """Validate and store an API key."""
        with log_context(handler="set_credentials"):
            try:
                async with self._open_client(api_key) as client:
                    valid = await client.validate_credentials()
            except DataFetchError as e:
                logger.warning("Credential check failed", error=str(e))
                return Err(ErrorKind.USER, "Something is wrong with the URL.", debug=str(e))

            if not valid:
                self.reset_auth()
                return Err(
                    ErrorKind.INVALID_CREDENTIALS,
                    "Invalid authentication key or url.",
                )

            url = self.service_url
            self.properties.set(AUTH_PROPERTY_KEY, api_key)
            self.properties.set(URL_PROPERTY_KEY, url)
            logger.info("Stored credentials", url=url)
            return Ok(None)

    async def is_auth_valid(self) -> bool:
        """Whether the stored key is still accepted by the service."""
        api_key = self.api_key
        if not api_key:
            return False
        try:
            async with self._open_client(api_key) as client:
                return await client.validate_credentials()
        except DataFetchError as e:
            logger.warning("Credential check failed", error=str(e))
            return False

    # ==================== Configuration ====================

    async def configure(
        self,
        table: str | None = None,
        cache_ttl_minutes: Any = None,
    ) -> Result[list[str]]:
        """List available tables and, if given, select one.

        Args:
            table: Table to select. With None only the table list is returned.
            cache_ttl_minutes: Requested cache TTL in minutes.

        Returns:
            Ok with the available table names.
        """
        with log_context(handler="configure", table=table):
            api_key = self.api_key
            if not api_key:
                self.reset_auth()
                return Err(
                    ErrorKind.CONFIG,
                    "Your authentication has been reset. Please enter your authentication key again.",
                )

            try:
                async with self._open_client(api_key) as client:
                    if not await client.validate_credentials():
                        self.reset_auth()
                        return Err(
                            ErrorKind.INVALID_CREDENTIALS,
                            "Invalid authentication key or url.",
                        )
                    tables = await client.list_tables()
            except (AuthenticationError, ConfigurationError, DataFetchError, SchemaError) as e:
                return _to_err(e)

            self.properties.set(TABLE_LIST_PROPERTY_KEY, TABLE_SEPARATOR.join(tables))
            if table is None:
                return Ok(tables)

            if table not in tables:
                return Err(
                    ErrorKind.USER,
                    f"Unknown table {table}.",
                    debug=f"Available tables: {', '.join(tables)}",
                )

            ttl = validate_cache_ttl(cache_ttl_minutes, self.settings)
            self.properties.set(TABLE_PROPERTY_KEY, table)
            self.properties.set(CACHE_TTL_PROPERTY_KEY, str(ttl))
            logger.info("Configured table", cache_ttl=ttl)
            return Ok(tables)

    # ==================== Schema & Data ====================

    async def _fetch_schema(self, client: ODataClient, table: str) -> EntitySchema:
        """Entity schema, from cache when available."""
        key = ("schema", self.service_url, table)
        try:
            cached = await self.sharded_cache.get(key)
        except CorruptPayloadError as e:
            logger.warning("Discarding corrupt cached schema", error=str(e))
            cached = None

        if cached is not None:
            return EntitySchema(
                entity_set=table,
                entity_type=cached.data["entity_type"],
                properties=dict(cached.data["properties"]),
            )

        schema = await client.get_entity_schema(table)
        await self.sharded_cache.set(
            key,
            {"entity_type": schema.entity_type, "properties": schema.properties},
            self.cache_ttl,
        )
        return schema

    def _rows_key(self, table: str) -> str:
        return fingerprint("rows", self.service_url, table)

    async def _read_cached_rows(self, table: str) -> list[ODataRow] | None:
        try:
            if self.settings.CACHE_STRATEGY == "rows":
                return await self.row_cache.get_rows(self._rows_key(table))
            record = await self.sharded_cache.get(("data", self.service_url, table))
            return record.data if record is not None else None
        except CorruptPayloadError as e:
            logger.warning("Discarding corrupt cached rows", error=str(e))
            return None

    async def _write_cached_rows(self, table: str, rows: list[ODataRow]) -> None:
        """Cache fetched rows. Rows too large for the backend are served uncached."""
        ttl = self.cache_ttl
        try:
            if self.settings.CACHE_STRATEGY == "rows":
                await self.row_cache.set_rows(
                    self._rows_key(table), rows, self.settings.CACHE_MAX_ENTRY_BYTES, ttl
                )
            else:
                await self.sharded_cache.set(("data", self.service_url, table), rows, ttl)
        except BackendCapacityExceededError:
            logger.error(
                "Rows do not fit the cache backend",
                strategy=self.settings.CACHE_STRATEGY,
                rows=len(rows),
                exc_info=True,
            )

    async def get_schema(self) -> Result[list[FieldSpec]]:
        """Host fields for the selected table."""
        table = self.properties.get(TABLE_PROPERTY_KEY)
        with log_context(handler="get_schema", table=table):
            try:
                api_key = self._require_api_key()
                table = self._require(TABLE_PROPERTY_KEY, "table")
                async with self._open_client(api_key) as client:
                    schema = await self._fetch_schema(client, table)
            except (AuthenticationError, ConfigurationError, DataFetchError, SchemaError) as e:
                return _to_err(e)
            return Ok(build_fields(schema))

    async def get_data(self, field_ids: Sequence[str]) -> Result[dict[str, Any]]:
        """Rows of the selected table projected onto field_ids.

        Returns:
            Ok({"schema": [field dicts], "rows": [{"values": [...]}, ...]})
        """
        table = self.properties.get(TABLE_PROPERTY_KEY)
        with log_context(handler="get_data", table=table):
            try:
                api_key = self._require_api_key()
                table = self._require(TABLE_PROPERTY_KEY, "table")
                async with self._open_client(api_key) as client:
                    schema = await self._fetch_schema(client, table)
                    raw_rows = await self._read_cached_rows(table)
                    if raw_rows is None:
                        logger.info("No cached data, fetching from service")
                        raw_rows = await client.get_entity_data(table)
                        await self._write_cached_rows(table, raw_rows)
                    else:
                        logger.info("Serving data from cache", rows=len(raw_rows))
            except (AuthenticationError, ConfigurationError, DataFetchError, SchemaError) as e:
                return _to_err(e)

            requested = select_fields(build_fields(schema), field_ids)
            rows = format_rows(schema, [f.id for f in requested], raw_rows)
            return Ok({"schema": [f.to_dict() for f in requested], "rows": rows})
