"""Base interface for generation-versioned document stores."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass

from labelsync.errors import StorageUnavailableError
from labelsync.records import KEY_FIELD, Record

# Opaque version tag assigned by the store. Only compared for equality.
Generation = str


@dataclass(frozen=True)
class VersionedDocument:
    """A document as read from the store, with the generation it was read at."""

    path: str
    records: list[Record]
    generation: Generation


class BlobStore(ABC):
    """
    Abstract base class for document stores.

    Every stored object is a JSON array of records. Each successful write
    assigns the object a new generation; conditional writes compare against
    it atomically at whole-object granularity.
    """

    content_type = "application/json"

    @abstractmethod
    def get(self, path: str) -> VersionedDocument | None:
        """
        Read a document and its current generation.

        Returns:
            VersionedDocument, or None if nothing is stored at ``path``

        Raises:
            StorageUnavailableError: On transport/auth/other store failure
        """
        ...

    @abstractmethod
    def put_if_generation(
        self,
        path: str,
        records: list[Record],
        expected_generation: Generation | None,
    ) -> Generation:
        """
        Write a document only if the stored generation still matches.

        Args:
            path: Storage path
            records: Full document to write
            expected_generation: Generation read before merging, or None to
                write only if no object exists yet

        Returns:
            The new generation

        Raises:
            PreconditionFailedError: If another writer got there first
            StorageUnavailableError: On any other store failure
        """
        ...

    @abstractmethod
    def put(self, path: str, records: list[Record]) -> Generation:
        """Write a document unconditionally and return its new generation."""
        ...

    def describe(self) -> str:
        """Short human-readable location, used in logs."""
        return self.__class__.__name__

    def _encode(self, records: list[Record]) -> bytes:
        return json.dumps(records, indent=2, ensure_ascii=False).encode("utf-8")

    def _decode(self, path: str, payload: bytes) -> list[Record]:
        try:
            records = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageUnavailableError(
                f"Document at {path} is not valid JSON", cause=e
            ) from e
        if not isinstance(records, list):
            raise StorageUnavailableError(f"Document at {path} is not a JSON array")
        for index, item in enumerate(records):
            if not isinstance(item, dict) or not isinstance(item.get(KEY_FIELD), str):
                raise StorageUnavailableError(
                    f"Document at {path} has a record without {KEY_FIELD!r} at index {index}"
                ).with_context(path=path, index=index)
        return records
