"""
FastAPI application factory.

Usage::

    uvicorn labelsync.api:create_app --factory --port 3002

Or via the CLI::

    labelsync serve
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from labelsync import __version__
from labelsync.api.errors import labelsync_error_handler, unhandled_exception_handler
from labelsync.committer import MergeCommitter
from labelsync.config import Settings, get_settings
from labelsync.errors import LabelSyncError
from labelsync.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "api_starting",
        storage=app.state.committer.store.describe(),
        max_attempts=app.state.committer.max_attempts,
    )
    yield
    logger.info("api_stopped")


def create_app(
    settings: Settings | None = None,
    committer: MergeCommitter | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : Settings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    committer : MergeCommitter | None
        Override the committer; by default one is built from ``settings``
        over the configured store.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="labelsync",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )

    app.state.settings = settings
    app.state.committer = committer or MergeCommitter.from_settings(settings)

    # ── Middleware ───────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(LabelSyncError, labelsync_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from labelsync.api import routes

    app.include_router(routes.router, prefix="/api", tags=["analytics"])

    return app
