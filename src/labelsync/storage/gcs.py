"""Google Cloud Storage backend."""

from typing import Any

import structlog
from google.api_core import exceptions as gcs_exceptions
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from labelsync.errors import PreconditionFailedError, StorageUnavailableError
from labelsync.records import Record
from labelsync.storage.base import BlobStore, Generation, VersionedDocument

logger = structlog.get_logger()

# Bounded re-reads when an object is replaced between metadata and body fetch
_READ_ATTEMPTS = 3


class GCSBlobStore(BlobStore):
    """
    Google Cloud Storage backend using native object generations.

    Conditional writes pass ``if_generation_match``; generation ``0`` means
    "only if the object does not exist yet".
    """

    def __init__(
        self,
        bucket: str,
        project: str | None = None,
        credentials_file: str | None = None,
        client: Any = None,
    ):
        if client is None:
            if credentials_file:
                client = storage.Client.from_service_account_json(credentials_file, project=project)
            else:
                client = storage.Client(project=project)

        self.client = client
        self.bucket_name = bucket
        self.bucket = client.bucket(bucket)

        logger.info("gcs_store_initialized", bucket=bucket, project=project)

    def get(self, path: str) -> VersionedDocument | None:
        for _ in range(_READ_ATTEMPTS):
            try:
                blob = self.bucket.get_blob(path)
                if blob is None:
                    return None
                # Pin the body to the generation we report
                payload = blob.download_as_bytes(if_generation_match=blob.generation)
            except (gcs_exceptions.PreconditionFailed, gcs_exceptions.NotFound):
                continue
            except (gcs_exceptions.GoogleAPIError, GoogleAuthError, OSError) as e:
                raise StorageUnavailableError(
                    f"Failed to read gs://{self.bucket_name}/{path}", cause=e
                ) from e

            return VersionedDocument(
                path=path,
                records=self._decode(path, payload),
                generation=str(blob.generation),
            )

        raise StorageUnavailableError(
            f"gs://{self.bucket_name}/{path} kept changing while being read"
        )

    def put_if_generation(
        self,
        path: str,
        records: list[Record],
        expected_generation: Generation | None,
    ) -> Generation:
        match = int(expected_generation) if expected_generation is not None else 0
        return self._upload(path, records, if_generation_match=match)

    def put(self, path: str, records: list[Record]) -> Generation:
        return self._upload(path, records)

    def _upload(self, path: str, records: list[Record], **conditions: int) -> Generation:
        payload = self._encode(records)
        blob = self.bucket.blob(path)
        blob.cache_control = "no-cache"

        try:
            blob.upload_from_string(payload, content_type=self.content_type, **conditions)
        except gcs_exceptions.PreconditionFailed as e:
            expected = conditions.get("if_generation_match")
            raise PreconditionFailedError(
                path, str(expected) if expected else None, cause=e
            ) from e
        except (gcs_exceptions.GoogleAPIError, GoogleAuthError, OSError) as e:
            raise StorageUnavailableError(
                f"Failed to write gs://{self.bucket_name}/{path}", cause=e
            ) from e

        logger.info(
            "gcs_document_written",
            bucket=self.bucket_name,
            path=path,
            size=len(payload),
            generation=blob.generation,
        )
        return str(blob.generation)

    def describe(self) -> str:
        return f"gs://{self.bucket_name}"
