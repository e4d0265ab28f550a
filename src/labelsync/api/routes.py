"""
Analytics router: save, load and export dataset documents.

Endpoints:
    POST /api/save-analytics   Merge a partial batch, or overwrite the document
    GET  /api/load-analytics   Current document for a dataset
    GET  /api/excel            Current document as an .xlsx download
    GET  /api/health           Liveness and configured storage
"""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Query, Request, Response

from labelsync.api.deps import Committer
from labelsync.api.schemas import ErrorResponse, HealthResponse, LoadResponse, SaveRequest, SaveResponse
from labelsync.datasets import DATASETS
from labelsync.errors import DocumentNotFoundError, InvalidInputError
from labelsync.export import XLSX_CONTENT_TYPE, export_filename, export_xlsx

router = APIRouter()

DatasetQuery = Annotated[str | None, Query(description="Dataset id; defaults to 'existing'")]

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

_ERRORS = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post("/save-analytics", response_model=SaveResponse, responses=_ERRORS)
async def save_analytics(
    request: Request,
    committer: Committer,
    dataset: DatasetQuery = None,
) -> SaveResponse:
    """Commit a batch of records.

    ``{"isPartialUpdate": true, "data": [...]}`` merges by filename into the
    stored document. ``isPartialUpdate: false`` or a bare array replaces it.
    """
    try:
        payload = await request.json()
    except ValueError as e:
        raise InvalidInputError("Request body must be JSON", cause=e) from e

    body = SaveRequest.from_payload(payload)
    if body.is_partial_update:
        result = await committer.save(body.data, dataset)
    else:
        result = await committer.replace(body.data, dataset)

    if not result:
        raise result.error

    return SaveResponse(
        message=(
            "Analytics data merged successfully"
            if result.merged
            else "Analytics data saved successfully"
        ),
        merged=result.merged,
        images_updated=result.records_saved,
        storage=committer.store.describe(),
    )


@router.get("/load-analytics", response_model=LoadResponse, responses=_ERRORS)
async def load_analytics(
    response: Response,
    committer: Committer,
    dataset: DatasetQuery = None,
) -> LoadResponse:
    """Current document; ``data`` is null when nothing is saved yet."""
    loaded = await committer.load(dataset)
    response.headers.update(NO_CACHE_HEADERS)
    return LoadResponse(data=loaded.records, source=loaded.source)


@router.get(
    "/excel",
    response_class=Response,
    responses={200: {"content": {XLSX_CONTENT_TYPE: {}}}, 404: {"model": ErrorResponse}, **_ERRORS},
)
async def download_excel(committer: Committer, dataset: DatasetQuery = None) -> Response:
    loaded = await committer.load(dataset)
    if not loaded.records:
        raise DocumentNotFoundError(f"No analytics data saved for {loaded.dataset}")

    content = await asyncio.to_thread(export_xlsx, loaded.records)
    return Response(
        content=content,
        media_type=XLSX_CONTENT_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename()}"',
            **NO_CACHE_HEADERS,
        },
    )


@router.get("/health", response_model=HealthResponse)
async def health(committer: Committer) -> HealthResponse:
    return HealthResponse(
        status="ok",
        storage=committer.store.describe(),
        datasets=list(DATASETS),
    )
