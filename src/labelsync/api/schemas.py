"""Request and response bodies for the analytics endpoints.

Field names on the wire are camelCase to match the browser client; the
Python side uses snake_case with aliases.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from labelsync.errors import InvalidInputError


class SaveRequest(BaseModel):
    """Body of ``POST /api/save-analytics``.

    A bare JSON array is also accepted and treated as a full overwrite.
    """

    model_config = ConfigDict(populate_by_name=True)

    is_partial_update: bool = Field(default=True, alias="isPartialUpdate")
    data: list[dict[str, Any]]

    @classmethod
    def from_payload(cls, payload: Any) -> SaveRequest:
        if isinstance(payload, list):
            payload = {"isPartialUpdate": False, "data": payload}
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            where = ".".join(str(part) for part in first["loc"]) or "body"
            raise InvalidInputError(
                f"Invalid save request: {where}: {first['msg']}",
                cause=e,
            ) from e


class SaveResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    merged: bool
    images_updated: int = Field(alias="imagesUpdated")
    storage: str


class LoadResponse(BaseModel):
    success: bool = True
    data: list[dict[str, Any]] | None
    source: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class HealthResponse(BaseModel):
    status: str
    storage: str
    datasets: list[str]
