"""Dataset partitions.

Each dataset is an independently versioned document stored at its own path.
Partitions never merge with each other.
"""

from __future__ import annotations

from dataclasses import dataclass

from labelsync.errors import UnknownDatasetError

DATA_FILE = "image_analytics_data.json"


@dataclass(frozen=True)
class Dataset:
    """A named document partition and where it lives in the store."""

    id: str
    folder: str
    title: str

    @property
    def path(self) -> str:
        return f"{self.folder}/{DATA_FILE}"


DATASETS: dict[str, Dataset] = {
    "existing": Dataset("existing", "analytics-data", "Existing cameras"),
    "ptz": Dataset("ptz", "analytics-data-ptz", "PTZ cameras"),
    "new_guntur": Dataset("new_guntur", "analytics-data-new-guntur", "New Guntur"),
}

DEFAULT_DATASET = "existing"


def get_dataset(dataset_id: str | None) -> Dataset:
    """Resolve a dataset id, defaulting to ``existing`` when none is given.

    Raises:
        UnknownDatasetError: If ``dataset_id`` names no partition.
    """
    if not dataset_id:
        return DATASETS[DEFAULT_DATASET]
    try:
        return DATASETS[dataset_id]
    except KeyError:
        raise UnknownDatasetError(
            f"Unknown dataset {dataset_id!r}; expected one of {sorted(DATASETS)}"
        ) from None
