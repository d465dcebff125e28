"""HTTP client for the transport management CRUD backend."""

import asyncio
from typing import Any

import httpx
import structlog

from freight_ledger.config import get_settings
from freight_ledger.exceptions import RecordNotFoundError, TransportAPIError
from freight_ledger.store.base import Record, check_collection

logger = structlog.get_logger(__name__)


class TransportAPIClient:
    """Async client for the ``/api/{collection}`` REST contract.

    The client owns one ``httpx.AsyncClient`` between ``connect()`` and
    ``close()``; use it as an async context manager to get both.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.transport_api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.transport_api_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.transport_api_max_retries
        )
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def connect(self) -> dict[str, Any]:
        """Open the HTTP client and check the backend is reachable."""
        health = await self.health()
        logger.info("transport_api_connected", base_url=self.base_url, status=health.get("status"))
        return health

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "TransportAPIClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json: Record | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an API request, retrying transport failures with backoff."""
        client = await self._get_client()

        try:
            response = await client.request(method=method, url=path, json=json)

            if response.status_code == 404:
                raise RecordNotFoundError(
                    f"Not found: {path}", status_code=404, details=_error_detail(response)
                )

            if response.status_code >= 400:
                raise TransportAPIError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    details=_error_detail(response),
                )

            return response.json() if response.content else {}

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning(
                    "transport_api_retry", method=method, path=path, attempt=retry_count + 1
                )
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, json, retry_count + 1)
            raise TransportAPIError(f"Request failed: {e}") from e

    async def health(self) -> dict[str, Any]:
        data = await self._request("GET", "/api/health")
        return data if isinstance(data, dict) else {}

    # === Collections ===

    async def get_all(self, collection: str) -> list[Record]:
        data = await self._request("GET", f"/api/{check_collection(collection)}")
        if not isinstance(data, list):
            raise TransportAPIError(f"Invalid {collection} response format", details=data)
        return data

    async def get(self, collection: str, record_id: str) -> Record:
        return await self._request("GET", f"/api/{check_collection(collection)}/{record_id}")

    async def create(self, collection: str, record: Record) -> Record:
        created = await self._request("POST", f"/api/{check_collection(collection)}", json=record)
        record_id = created.get("id") or created.get("_id")
        logger.debug("record_created", collection=collection, id=record_id)
        return created

    async def update(self, collection: str, record_id: str, record: Record) -> Record:
        updated = await self._request(
            "PUT", f"/api/{check_collection(collection)}/{record_id}", json=record
        )
        logger.debug("record_updated", collection=collection, id=record_id)
        return updated

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request("DELETE", f"/api/{check_collection(collection)}/{record_id}")
        logger.debug("record_deleted", collection=collection, id=record_id)


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json() if response.content else {}
    except ValueError:
        return {"raw": response.text[:500] if response.text else "empty response"}
