"""
Shared pytest fixtures for labelsync tests.

This module provides:
- Settings/storage isolation (every test starts on a fresh memory store)
- A ready-made committer with instant backoff
- Record factories

Usage:
    Fixtures are auto-discovered by pytest::

        async def test_something(committer, record):
            await committer.save([record("a.jpg")], "ptz")
"""

from pathlib import Path
from typing import Any

import pytest

from labelsync.committer import MergeCommitter
from labelsync.config import reset_settings
from labelsync.retry import ConstantBackoff
from labelsync.storage import MemoryBlobStore, reset_storage


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path) or test_path.name in ("test_api.py", "test_cli.py"):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Point settings at an in-memory store and drop cached singletons."""
    for name in (
        "LABELSYNC_FALLBACK_LOCAL_PATH",
        "LABELSYNC_STORAGE_LOCAL_PATH",
        "LABELSYNC_SAVE_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LABELSYNC_STORAGE_TYPE", "memory")
    reset_settings()
    reset_storage()
    yield
    reset_settings()
    reset_storage()


# =============================================================================
# Store / Committer Fixtures
# =============================================================================


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by the committer, in order."""
    return []


@pytest.fixture
def committer(memory_store, sleeps) -> MergeCommitter:
    """Committer over ``memory_store`` whose backoff returns immediately."""

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return MergeCommitter(
        memory_store,
        max_attempts=3,
        backoff=ConstantBackoff(0.01),
        sleep=fake_sleep,
    )


# =============================================================================
# Record Factories
# =============================================================================


@pytest.fixture
def record():
    """Factory for minimal keyed records: ``record("a.jpg", v=1)``."""

    def _make(filename: str, **fields: Any) -> dict[str, Any]:
        return {"filename": filename, **fields}

    return _make
