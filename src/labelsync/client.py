"""HTTP client for the analytics API.

``HttpSaveTransport`` is the network leg of :class:`SaveCoordinator`;
``AnalyticsClient`` bundles it with reads and the spreadsheet download.
"""

from __future__ import annotations

from typing import Any

import httpx

from labelsync.coordinator import SaveCoordinator
from labelsync.errors import FlushTransportError
from labelsync.logging import get_logger
from labelsync.records import Record

logger = get_logger(__name__)

SAVE_PATH = "/api/save-analytics"
LOAD_PATH = "/api/load-analytics"
EXCEL_PATH = "/api/excel"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


class HttpSaveTransport:
    """POST batches of partial records to the save endpoint."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def __call__(self, dataset_id: str, records: list[Record]) -> dict[str, Any]:
        try:
            response = await self._client.post(
                SAVE_PATH,
                params={"dataset": dataset_id},
                json={"isPartialUpdate": True, "data": records},
            )
        except httpx.HTTPError as e:
            raise FlushTransportError(f"Could not reach save endpoint: {e}", cause=e) from e

        if response.is_error:
            raise FlushTransportError(
                f"Save rejected with HTTP {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )

        body = response.json()
        if not body.get("success"):
            raise FlushTransportError(
                f"Save failed: {body.get('error', 'unknown error')}",
                status_code=response.status_code,
            )
        return body


class AnalyticsClient:
    """
    Async client for one annotation server.

    Usage::

        async with AnalyticsClient("http://localhost:3002") as client:
            await client.save_record(record, "ptz")
            records = await client.load("ptz")
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        coordinator: SaveCoordinator | None = None,
        settings=None,
    ) -> None:
        from labelsync.config import get_settings

        settings = settings or get_settings()
        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(
            base_url=base_url or settings.client_base_url,
            timeout=settings.client_flush_timeout_seconds,
        )
        self.coordinator = coordinator or SaveCoordinator.from_settings(
            HttpSaveTransport(self.http), settings
        )

    async def __aenter__(self) -> AnalyticsClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def save_record(self, record: Record, dataset_id: str | None) -> bool:
        """Queue one record and wait for the batch holding it to be saved."""
        return await self.coordinator.enqueue(record, dataset_id)

    async def save_all(self, records: list[Record], dataset_id: str | None) -> dict[str, Any]:
        """Overwrite the whole dataset document in one request."""
        response = await self.http.post(
            SAVE_PATH,
            params={"dataset": dataset_id} if dataset_id else None,
            json={"isPartialUpdate": False, "data": records},
        )
        if response.is_error:
            raise FlushTransportError(
                f"Save rejected with HTTP {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        return response.json()

    async def load(self, dataset_id: str | None) -> list[Record] | None:
        """Fetch the dataset's current document, or None if nothing is saved yet."""
        response = await self.http.get(
            LOAD_PATH,
            params={"dataset": dataset_id} if dataset_id else None,
            headers={"Cache-Control": "no-cache"},
        )
        response.raise_for_status()
        body = response.json()
        logger.debug("document_loaded", dataset=dataset_id, source=body.get("source"))
        return body.get("data")

    async def download_excel(self, dataset_id: str | None) -> bytes:
        """Fetch the dataset as an .xlsx workbook."""
        response = await self.http.get(
            EXCEL_PATH,
            params={"dataset": dataset_id} if dataset_id else None,
        )
        response.raise_for_status()
        return response.content

    async def aclose(self) -> None:
        """Flush pending saves, then close the HTTP client if we created it."""
        await self.coordinator.close()
        if self._owns_http:
            await self.http.aclose()
