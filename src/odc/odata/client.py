"""
OData client for listing tables, reading $metadata and fetching rows.

Every request carries the user's key in the ApiKey header.
"""

from __future__ import annotations

from typing import Any

import httpx

from odc.config import get_settings
from odc.exceptions import DataFetchError
from odc.logging import get_logger
from odc.odata.schema import parse_schema_xml
from odc.types import EntitySchema, ODataRow

logger = get_logger(__name__)

METADATA_PATH = "$metadata"


class ODataClient:
    """Client for an API-key protected OData service."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize OData client.

        Args:
            base_url: Root URL of the OData service.
            api_key: Key sent in the ApiKey header.
            timeout: Request timeout in seconds. Defaults to settings.
            transport: Optional httpx transport (used by tests).
        """
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.edm_namespace = settings.EDM_SCHEMA_NAMESPACE
        self.entity_namespace = settings.ENTITY_SCHEMA_NAMESPACE
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with the ApiKey header."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"ApiKey": self.api_key or ""},
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str = "") -> str:
        return f"{self.base_url}/{path}" if path else self.base_url

    async def _get(self, url: str) -> httpx.Response:
        """Issue a GET, converting transport failures to DataFetchError."""
        client = await self._get_client()
        try:
            return await client.get(url)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise DataFetchError(
                "Request to OData service failed",
                context={"url": url, "error": str(e)},
            ) from e

    async def _get_ok(self, url: str) -> httpx.Response:
        response = await self._get(url)
        if response.status_code != 200:
            raise DataFetchError(
                f"OData service returned status {response.status_code}",
                context={
                    "url": url,
                    "status_code": response.status_code,
                    "response": response.text[:500] if response.text else None,
                },
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DataFetchError(
                "Invalid response from server",
                context={"url": str(response.request.url), "error": str(e)},
            ) from e

    async def validate_credentials(self) -> bool:
        """Check the key by requesting the service root.

        Returns:
            True if the service answered 200, False for a missing key or
            any other status.

        Raises:
            DataFetchError: If the service can't be reached at all.
        """
        if not self.api_key:
            return False

        response = await self._get(self._url(""))
        logger.debug("Validated credentials", status_code=response.status_code)
        return response.status_code == 200

    async def list_tables(self) -> list[str]:
        """List the entity set names published by the service root.

        The service document looks like:
            {"@odata.context": ".../$metadata",
             "value": [{"name": "Submissions", "kind": "EntitySet", "url": "Submissions"}]}
        """
        response = await self._get_ok(self._url(""))
        payload = self._json(response)
        if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
            raise DataFetchError(
                "Service document has no table list",
                context={"url": self.base_url},
            )
        tables = [entry["name"] for entry in payload["value"] if "name" in entry]
        logger.info("Listed tables", count=len(tables))
        return tables

    async def get_entity_schema(self, entity: str) -> EntitySchema:
        """Fetch $metadata and extract the property types of one entity set."""
        response = await self._get_ok(self._url(METADATA_PATH))
        return parse_schema_xml(
            response.content,
            entity,
            edm_namespace=self.edm_namespace,
            entity_namespace=self.entity_namespace,
        )

    async def get_entity_data(self, entity: str) -> list[ODataRow]:
        """Fetch all rows of an entity set.

        Raises:
            DataFetchError: On HTTP errors, bad JSON, or an empty result.
        """
        url = self._url(entity)
        response = await self._get_ok(url)
        payload = self._json(response)

        rows = payload.get("value") if isinstance(payload, dict) else None
        if not rows:
            raise DataFetchError(
                "Empty response from server",
                context={"url": url, "entity": entity},
            )

        logger.info("Fetched entity rows", entity=entity, rows=len(rows))
        return rows
