"""Tests for the analytics HTTP API."""

import io

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from labelsync.api import create_app
from labelsync.committer import MergeCommitter
from labelsync.config import Settings
from labelsync.datasets import get_dataset
from labelsync.retry import ConstantBackoff
from labelsync.storage import MemoryBlobStore
from tests._support.stores import FlakyStore

PTZ = get_dataset("ptz").path
EXISTING = get_dataset("existing").path


async def _no_sleep(delay):
    return None


def make_client(store, *, fallback=None, max_attempts=3):
    committer = MergeCommitter(
        store,
        max_attempts=max_attempts,
        backoff=ConstantBackoff(0),
        fallback=fallback,
        sleep=_no_sleep,
    )
    app = create_app(Settings(storage_type="memory"), committer=committer)
    return TestClient(app)


@pytest.fixture
def store():
    return MemoryBlobStore()


@pytest.fixture
def client(store):
    with make_client(store) as c:
        yield c


class TestSaveAnalytics:
    """POST /api/save-analytics"""

    def test_partial_update_merges(self, client, store):
        store.put(PTZ, [{"filename": "a.jpg", "S.No": 1}, {"filename": "b.jpg", "S.No": 2}])

        resp = client.post(
            "/api/save-analytics",
            params={"dataset": "ptz"},
            json={"isPartialUpdate": True, "data": [{"filename": "b.jpg", "v": 9}]},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["merged"] is True
        assert body["imagesUpdated"] == 1
        assert body["storage"] == "memory"
        assert store.get(PTZ).records[1] == {"filename": "b.jpg", "v": 9, "S.No": 2}

    def test_first_partial_save_not_merged(self, client):
        resp = client.post(
            "/api/save-analytics",
            params={"dataset": "ptz"},
            json={"isPartialUpdate": True, "data": [{"filename": "a.jpg"}]},
        )

        assert resp.status_code == 200
        assert resp.json()["merged"] is False

    def test_partial_flag_defaults_true(self, client, store):
        store.put(PTZ, [{"filename": "a.jpg", "S.No": 1}])

        resp = client.post("/api/save-analytics?dataset=ptz", json={"data": [{"filename": "b.jpg"}]})

        assert resp.json()["merged"] is True
        assert len(store.get(PTZ).records) == 2

    def test_full_overwrite(self, client, store):
        store.put(PTZ, [{"filename": "a.jpg", "S.No": 1}])

        resp = client.post(
            "/api/save-analytics",
            params={"dataset": "ptz"},
            json={"isPartialUpdate": False, "data": [{"filename": "z.jpg"}]},
        )

        assert resp.status_code == 200
        assert resp.json()["merged"] is False
        assert store.get(PTZ).records == [{"filename": "z.jpg", "S.No": 1}]

    def test_bare_array_is_full_overwrite(self, client, store):
        store.put(EXISTING, [{"filename": "a.jpg", "S.No": 1}])

        resp = client.post("/api/save-analytics", json=[{"filename": "b.jpg"}])

        assert resp.status_code == 200
        assert store.get(EXISTING).records == [{"filename": "b.jpg", "S.No": 1}]

    def test_empty_batch_rejected(self, client, store):
        store.put(PTZ, [{"filename": "a.jpg", "S.No": 1}])

        resp = client.post(
            "/api/save-analytics",
            params={"dataset": "ptz"},
            json={"isPartialUpdate": False, "data": []},
        )

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Cannot save an empty array of records"}
        assert len(store.get(PTZ).records) == 1

    @pytest.mark.parametrize(
        "body",
        [
            {"isPartialUpdate": True},
            {"data": "not-a-list"},
            {"data": [1, 2]},
            {"data": [{"labels": []}]},
            "just a string",
        ],
    )
    def test_malformed_body(self, client, body):
        resp = client.post("/api/save-analytics", json=body)

        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_invalid_json(self, client):
        resp = client.post(
            "/api/save-analytics",
            content=b"{oops",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status_code == 400

    def test_unknown_dataset(self, client):
        resp = client.post("/api/save-analytics?dataset=nope", json={"data": [{"filename": "a"}]})

        assert resp.status_code == 400
        assert "nope" in resp.json()["error"]

    def test_conflict_exhausted_is_500(self):
        with make_client(FlakyStore(MemoryBlobStore(), conflicts=10), max_attempts=2) as client:
            resp = client.post("/api/save-analytics", json={"data": [{"filename": "a.jpg"}]})

        assert resp.status_code == 500
        assert resp.json()["success"] is False

    def test_storage_unavailable_is_503(self):
        with make_client(FlakyStore(MemoryBlobStore(), unavailable=True)) as client:
            resp = client.post("/api/save-analytics", json={"data": [{"filename": "a.jpg"}]})

        assert resp.status_code == 503


class TestLoadAnalytics:
    """GET /api/load-analytics"""

    def test_no_document(self, client):
        resp = client.get("/api/load-analytics", params={"dataset": "ptz"})

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "data": None, "source": "store"}

    def test_returns_document_uncached(self, client, store):
        store.put(PTZ, [{"filename": "a.jpg", "S.No": 1}])

        resp = client.get("/api/load-analytics", params={"dataset": "ptz"})

        assert resp.json()["data"] == [{"filename": "a.jpg", "S.No": 1}]
        assert "no-cache" in resp.headers["cache-control"]
        assert resp.headers["pragma"] == "no-cache"
        assert resp.headers["expires"] == "0"

    def test_save_then_load(self, client):
        client.post("/api/save-analytics?dataset=new_guntur", json={"data": [{"filename": "x.jpg"}]})

        resp = client.get("/api/load-analytics?dataset=new_guntur")

        assert [r["filename"] for r in resp.json()["data"]] == ["x.jpg"]

    def test_unknown_dataset(self, client):
        assert client.get("/api/load-analytics?dataset=nope").status_code == 400

    def test_fallback_when_store_down(self):
        fallback = MemoryBlobStore()
        fallback.put(EXISTING, [{"filename": "cached.jpg", "S.No": 1}])

        with make_client(FlakyStore(MemoryBlobStore(), unavailable=True), fallback=fallback) as client:
            resp = client.get("/api/load-analytics")

        assert resp.status_code == 200
        assert resp.json()["source"] == "fallback"
        assert resp.json()["data"][0]["filename"] == "cached.jpg"

    def test_store_down_without_fallback(self):
        with make_client(FlakyStore(MemoryBlobStore(), unavailable=True)) as client:
            resp = client.get("/api/load-analytics")

        assert resp.status_code == 503


class TestExcel:
    """GET /api/excel"""

    def test_no_data_is_404(self, client):
        resp = client.get("/api/excel", params={"dataset": "ptz"})

        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_download(self, client, store):
        store.put(PTZ, [{"S.No": 1, "filename": "a.jpg", "Loitering": "yes"}])

        resp = client.get("/api/excel", params={"dataset": "ptz"})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert "attachment; filename=\"image_analytics_" in resp.headers["content-disposition"]
        ws = load_workbook(io.BytesIO(resp.content)).active
        assert [c.value for c in ws[1]] == ["S.No", "filename", "Loitering"]
        assert [c.value for c in ws[2]] == [1, "a.jpg", "yes"]


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "storage": "memory",
            "datasets": ["existing", "ptz", "new_guntur"],
        }


class TestCreateApp:
    def test_default_committer_from_settings(self):
        app = create_app()

        assert isinstance(app.state.committer.store, MemoryBlobStore)

    def test_cors_preflight(self, client):
        resp = client.options(
            "/api/save-analytics",
            headers={
                "Origin": "http://labeler.example",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert resp.status_code == 200
        assert "access-control-allow-origin" in resp.headers
