"""In-process document store."""

import threading

import structlog

from labelsync.errors import PreconditionFailedError
from labelsync.records import Record
from labelsync.storage.base import BlobStore, Generation, VersionedDocument

logger = structlog.get_logger()


class MemoryBlobStore(BlobStore):
    """
    Dictionary-backed store with an integer generation per path.

    Documents are kept serialized so callers never share mutable state with
    the store. Suitable for tests and single-process development servers.
    """

    def __init__(self):
        self._objects: dict[str, tuple[bytes, int]] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> VersionedDocument | None:
        with self._lock:
            stored = self._objects.get(path)
        if stored is None:
            return None
        payload, generation = stored
        return VersionedDocument(
            path=path,
            records=self._decode(path, payload),
            generation=str(generation),
        )

    def put_if_generation(
        self,
        path: str,
        records: list[Record],
        expected_generation: Generation | None,
    ) -> Generation:
        payload = self._encode(records)
        with self._lock:
            stored = self._objects.get(path)
            current = str(stored[1]) if stored is not None else None
            if current != expected_generation:
                raise PreconditionFailedError(path, expected_generation)
            return self._store(path, payload, stored)

    def put(self, path: str, records: list[Record]) -> Generation:
        payload = self._encode(records)
        with self._lock:
            return self._store(path, payload, self._objects.get(path))

    def _store(self, path: str, payload: bytes, stored: tuple[bytes, int] | None) -> Generation:
        generation = stored[1] + 1 if stored is not None else 1
        self._objects[path] = (payload, generation)
        logger.debug("memory_document_written", path=path, generation=generation)
        return str(generation)

    def describe(self) -> str:
        return "memory"
