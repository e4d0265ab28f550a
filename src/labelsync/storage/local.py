"""Local filesystem document store."""

import os
import threading
from pathlib import Path

import structlog

from labelsync.errors import PreconditionFailedError, StorageUnavailableError
from labelsync.records import Record
from labelsync.storage.base import BlobStore, Generation, VersionedDocument

logger = structlog.get_logger()

GENERATION_SUFFIX = ".generation"


class LocalBlobStore(BlobStore):
    """
    Local filesystem document store.

    Stores each document under a configurable base directory with the path
    structure preserved. The generation lives in a sidecar file next to the
    document. Conditional writes are serialized with a lock, so they are only
    atomic for writers inside this process.
    """

    def __init__(self, base_path: str | Path = "./data"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        logger.info("local_store_initialized", base_path=str(self.base_path))

    def _resolve_path(self, path: str) -> Path:
        """Resolve a storage path to absolute filesystem path."""
        clean_path = Path(path).as_posix().lstrip("/")
        full_path = self.base_path / clean_path

        # Security: ensure path is within base_path
        try:
            full_path.resolve().relative_to(self.base_path)
        except ValueError:
            raise ValueError(f"Invalid path: {path} (outside base directory)")

        return full_path

    def _generation_path(self, full_path: Path) -> Path:
        return full_path.with_name(full_path.name + GENERATION_SUFFIX)

    def _read_generation(self, full_path: Path) -> int | None:
        if not full_path.exists():
            return None
        sidecar = self._generation_path(full_path)
        if not sidecar.exists():
            # Document written by hand or by an older tool
            return 0
        return int(sidecar.read_text(encoding="utf-8").strip() or 0)

    def get(self, path: str) -> VersionedDocument | None:
        full_path = self._resolve_path(path)
        try:
            with self._lock:
                generation = self._read_generation(full_path)
                if generation is None:
                    return None
                payload = full_path.read_bytes()
        except (OSError, ValueError) as e:
            raise StorageUnavailableError(f"Failed to read {path}", cause=e) from e

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
        full_path = self._resolve_path(path)
        payload = self._encode(records)
        with self._lock:
            try:
                current = self._read_generation(full_path)
            except (OSError, ValueError) as e:
                raise StorageUnavailableError(f"Failed to read {path}", cause=e) from e
            if (str(current) if current is not None else None) != expected_generation:
                raise PreconditionFailedError(path, expected_generation)
            return self._write(path, full_path, payload, current)

    def put(self, path: str, records: list[Record]) -> Generation:
        full_path = self._resolve_path(path)
        payload = self._encode(records)
        with self._lock:
            try:
                current = self._read_generation(full_path)
            except (OSError, ValueError) as e:
                raise StorageUnavailableError(f"Failed to read {path}", cause=e) from e
            return self._write(path, full_path, payload, current)

    def _write(self, path: str, full_path: Path, payload: bytes, current: int | None) -> Generation:
        generation = (current or 0) + 1
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            # Sidecar before document: old content may carry a newer generation, never the reverse
            self._generation_path(full_path).write_text(str(generation), encoding="utf-8")
            tmp = full_path.with_name(full_path.name + ".tmp")
            tmp.write_bytes(payload)
            os.replace(tmp, full_path)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to write {path}", cause=e) from e

        logger.info("file_written", path=path, size=len(payload), generation=generation)
        return str(generation)

    def describe(self) -> str:
        return str(self.base_path)
