"""Tests for the HTTP client and transport."""

import asyncio
import json

import httpx
import pytest

from labelsync.api import create_app
from labelsync.client import AnalyticsClient, HttpSaveTransport
from labelsync.committer import MergeCommitter
from labelsync.config import Settings
from labelsync.errors import FlushTransportError
from labelsync.storage import MemoryBlobStore

BASE = "http://labelsync.test"


def mock_http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE)


class TestHttpSaveTransport:
    """Batches are posted as partial updates."""

    @pytest.mark.asyncio
    async def test_posts_partial_update(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "merged": True, "imagesUpdated": 1})

        async with mock_http(handler) as http:
            body = await HttpSaveTransport(http)("ptz", [{"filename": "a.jpg"}])

        assert body["success"] is True
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/save-analytics"
        assert request.url.params["dataset"] == "ptz"
        assert json.loads(request.content) == {
            "isPartialUpdate": True,
            "data": [{"filename": "a.jpg"}],
        }

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, json={"success": False, "error": "bucket down"})

        async with mock_http(handler) as http:
            with pytest.raises(FlushTransportError, match="bucket down") as exc_info:
                await HttpSaveTransport(http)("ptz", [{"filename": "a.jpg"}])

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_success_false(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "nope"})

        async with mock_http(handler) as http:
            with pytest.raises(FlushTransportError, match="nope"):
                await HttpSaveTransport(http)("ptz", [{"filename": "a.jpg"}])

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with mock_http(handler) as http:
            with pytest.raises(FlushTransportError, match="Could not reach"):
                await HttpSaveTransport(http)("ptz", [{"filename": "a.jpg"}])


class TestAnalyticsClient:
    """Client bundle against a mocked server."""

    @pytest.mark.asyncio
    async def test_save_record_is_batched(self):
        posts = []

        def handler(request):
            posts.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})

        settings = Settings(client_debounce_seconds=0.01)
        async with AnalyticsClient(http_client=mock_http(handler), settings=settings) as client:
            results = await asyncio.gather(
                client.save_record({"filename": "a.jpg", "v": 1}, "ptz"),
                client.save_record({"filename": "a.jpg", "v": 2}, "ptz"),
            )
            assert results == [True, True]

        assert posts == [{"isPartialUpdate": True, "data": [{"filename": "a.jpg", "v": 2}]}]

    @pytest.mark.asyncio
    async def test_load_and_download(self):
        def handler(request):
            if request.url.path == "/api/load-analytics":
                return httpx.Response(200, json={"success": True, "data": [], "source": "store"})
            return httpx.Response(200, content=b"PK\x03\x04")

        async with AnalyticsClient(http_client=mock_http(handler)) as client:
            assert await client.load("ptz") == []
            assert (await client.download_excel("ptz")).startswith(b"PK")

    @pytest.mark.asyncio
    async def test_save_all_rejected(self):
        def handler(request):
            return httpx.Response(400, json={"success": False, "error": "Cannot save an empty array of records"})

        async with AnalyticsClient(http_client=mock_http(handler)) as client:
            with pytest.raises(FlushTransportError, match="empty array") as exc_info:
                await client.save_all([], "ptz")

        assert exc_info.value.status_code == 400


class TestEndToEnd:
    """Client coordinator through the real app over ASGI."""

    @pytest.mark.asyncio
    async def test_two_clients_share_one_document(self):
        store = MemoryBlobStore()
        app = create_app(Settings(storage_type="memory"), committer=MergeCommitter(store))
        settings = Settings(client_debounce_seconds=0.01)

        def http():
            return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE)

        async with (
            AnalyticsClient(http_client=http(), settings=settings) as alice,
            AnalyticsClient(http_client=http(), settings=settings) as bob,
        ):
            await alice.save_record({"filename": "a.jpg", "labels": []}, "ptz")
            await bob.save_record({"filename": "b.jpg", "labels": []}, "ptz")
            await alice.save_record({"filename": "a.jpg", "labels": [{"x": 1}]}, "ptz")

            records = await bob.load("ptz")

        assert [(r["S.No"], r["filename"]) for r in records] == [(1, "a.jpg"), (2, "b.jpg")]
        assert records[0]["labels"] == [{"x": 1}]
