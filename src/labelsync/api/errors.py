"""
Error handling: maps labelsync errors to ``{"success": false, "error": ...}``.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from labelsync.api.schemas import ErrorResponse
from labelsync.errors import (
    DocumentNotFoundError,
    InvalidInputError,
    LabelSyncError,
    SaveFailedError,
    StorageUnavailableError,
)
from labelsync.logging import get_logger

logger = get_logger(__name__)

# ── Error type → HTTP status mapping ─────────────────────────────────────

ERROR_TYPE_TO_STATUS: dict[type[LabelSyncError], int] = {
    InvalidInputError: 400,
    DocumentNotFoundError: 404,
    StorageUnavailableError: 503,
    SaveFailedError: 500,
}


def status_for_error(exc: LabelSyncError) -> int:
    """Resolve an error to an HTTP status, defaulting to 500."""
    for error_type in type(exc).__mro__:
        if error_type in ERROR_TYPE_TO_STATUS:
            return ERROR_TYPE_TO_STATUS[error_type]
    return 500


def error_response(status: int, message: str) -> JSONResponse:
    body = ErrorResponse(error=message)
    return JSONResponse(status_code=status, content=body.model_dump())


async def labelsync_error_handler(request: Request, exc: LabelSyncError) -> JSONResponse:
    status = status_for_error(exc)
    log = logger.warning if status < 500 else logger.error
    log("request_failed", path=request.url.path, status=status, **exc.to_dict())
    return error_response(status, exc.message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions."""
    logger.exception("request_crashed", path=request.url.path)
    return error_response(500, "An unexpected error occurred.")
