"""Record shape shared by the client coordinator and the commit loop.

A record is a plain JSON object describing one image's annotation state.
``filename`` is its natural key; ``"S.No"`` is a display position that is
recomputed on every merge and never used for matching.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from labelsync.errors import InvalidInputError

Record = dict[str, Any]

KEY_FIELD = "filename"
POSITION_FIELD = "S.No"

ANALYTICS_OPTIONS: tuple[str, ...] = (
    "Abandoned Object",
    "Crowd Detection",
    "Intrusion Detection",
    "No Parking",
    "Loitering",
    "Garbage Detection",
    "Accident",
    "Wrong Way",
    "Congestion Detection",
    "Pot Hole",
)

CAMERA_FIELDS: tuple[str, ...] = (
    "Old DISTRICT",
    "NEW DISTRICT",
    "MANDAL",
    "Location Name",
    "LATITUDE",
    "LONGITUDE",
    "CAMERA IP",
    "TYPE OF CAMERA",
    "TYPE OF Analytics",
)


def record_key(record: Mapping[str, Any]) -> str:
    """Return the natural key of ``record``."""
    return record[KEY_FIELD]


def validate_batch(data: Any) -> list[Record]:
    """Check that ``data`` is a non-empty array of keyed records.

    An empty array is rejected: committing it as a full document would wipe
    every record in the dataset.

    Raises:
        InvalidInputError: If the batch is empty or any item lacks a key.
    """
    if not isinstance(data, list):
        raise InvalidInputError("Expected an array of records")
    if not data:
        raise InvalidInputError("Cannot save an empty array of records")

    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise InvalidInputError(f"Record at index {index} is not an object")
        key = item.get(KEY_FIELD)
        if not isinstance(key, str) or not key:
            raise InvalidInputError(
                f"Record at index {index} has no {KEY_FIELD!r}",
            ).with_context(index=index)
    return data


def build_record(
    filename: str,
    *,
    ip: str | None = None,
    camera: Mapping[str, Any] | None = None,
    analytics: Iterable[str] = (),
    labels: list[dict[str, Any]] | None = None,
    image_width: int | None = None,
    image_height: int | None = None,
) -> Record:
    """Build the saved row for one image.

    ``analytics`` names the categories assigned to the image; every known
    category becomes a ``yes``/``no`` column. The position field is filled
    with a placeholder and renumbered when the record is merged.
    """
    camera = camera or {}
    assigned = set(analytics)
    unknown = assigned.difference(ANALYTICS_OPTIONS)
    if unknown:
        raise InvalidInputError(f"Unknown analytics categories: {sorted(unknown)}")

    record: Record = {POSITION_FIELD: 0}
    for field in CAMERA_FIELDS:
        value = camera.get(field)
        if field in ("LATITUDE", "LONGITUDE"):
            record[field] = value if value is not None else ""
        else:
            record[field] = "" if value is None else str(value)
    if not record["CAMERA IP"] and ip:
        record["CAMERA IP"] = ip

    for option in ANALYTICS_OPTIONS:
        record[option] = "yes" if option in assigned else "no"

    record[KEY_FIELD] = filename
    record["ip"] = ip
    record["labels"] = list(labels or [])
    record["imageWidth"] = image_width
    record["imageHeight"] = image_height
    return record
