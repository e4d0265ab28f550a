"""S3-compatible object storage backend."""

from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from labelsync.errors import PreconditionFailedError, StorageUnavailableError
from labelsync.records import Record
from labelsync.storage.base import BlobStore, Generation, VersionedDocument

logger = structlog.get_logger()

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
# 409 ConditionalRequestConflict: a concurrent conditional write is in flight
PRECONDITION_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}


class S3BlobStore(BlobStore):
    """
    S3-compatible object storage backend.

    The object's ETag is used as its generation: writes carry ``IfMatch`` with
    the ETag read before merging, or ``IfNoneMatch="*"`` for the first write.
    Works with AWS S3 and any S3-compatible service that honours conditional
    puts.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key: str | None = None,
        secret_key: str | None = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region

        if client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": region,
                "config": Config(signature_version="s3v4"),
            }

            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url

            if access_key and secret_key:
                client_kwargs["aws_access_key_id"] = access_key
                client_kwargs["aws_secret_access_key"] = secret_key

            client = boto3.client(**client_kwargs)

        self.client = client

        logger.info(
            "s3_store_initialized",
            bucket=bucket,
            endpoint=endpoint_url,
            region=region,
        )

    @staticmethod
    def _error_code(err: ClientError) -> str:
        return str(err.response.get("Error", {}).get("Code", ""))

    def get(self, path: str) -> VersionedDocument | None:
        key = path.lstrip("/")

        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            payload = response["Body"].read()
        except ClientError as e:
            if self._error_code(e) in NOT_FOUND_CODES:
                return None
            raise StorageUnavailableError(f"Failed to read s3://{self.bucket}/{key}", cause=e) from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Failed to read s3://{self.bucket}/{key}", cause=e) from e

        return VersionedDocument(
            path=path,
            records=self._decode(path, payload),
            generation=response["ETag"],
        )

    def put_if_generation(
        self,
        path: str,
        records: list[Record],
        expected_generation: Generation | None,
    ) -> Generation:
        if expected_generation is None:
            return self._put_object(path, records, IfNoneMatch="*")
        return self._put_object(path, records, IfMatch=expected_generation)

    def put(self, path: str, records: list[Record]) -> Generation:
        return self._put_object(path, records)

    def _put_object(self, path: str, records: list[Record], **conditions: str) -> Generation:
        key = path.lstrip("/")
        payload = self._encode(records)

        try:
            response = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=payload,
                ContentType=self.content_type,
                CacheControl="no-cache",
                **conditions,
            )
        except ClientError as e:
            if conditions and self._error_code(e) in PRECONDITION_CODES:
                expected = conditions.get("IfMatch")
                raise PreconditionFailedError(path, expected, cause=e) from e
            raise StorageUnavailableError(f"Failed to write s3://{self.bucket}/{key}", cause=e) from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Failed to write s3://{self.bucket}/{key}", cause=e) from e

        logger.info("s3_document_written", bucket=self.bucket, key=key, size=len(payload))
        return response["ETag"]

    def describe(self) -> str:
        return f"s3://{self.bucket}"
