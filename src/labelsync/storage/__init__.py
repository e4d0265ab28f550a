"""Generation-versioned document stores."""

from labelsync.storage.base import BlobStore, Generation, VersionedDocument
from labelsync.storage.local import LocalBlobStore
from labelsync.storage.memory import MemoryBlobStore

__all__ = [
    "BlobStore",
    "Generation",
    "VersionedDocument",
    "LocalBlobStore",
    "MemoryBlobStore",
    "get_store",
    "get_fallback_store",
    "reset_storage",
]


_store: BlobStore | None = None
_fallback: BlobStore | None = None


def get_store() -> BlobStore:
    """Get or create the primary store based on configuration."""
    global _store
    if _store is None:
        from labelsync.config import get_settings

        settings = get_settings()

        if settings.storage_type == "s3":
            from labelsync.storage.s3 import S3BlobStore

            _store = S3BlobStore(
                bucket=settings.storage_s3_bucket,
                endpoint_url=settings.storage_s3_endpoint,
                region=settings.storage_s3_region,
                access_key=settings.storage_s3_access_key,
                secret_key=settings.storage_s3_secret_key,
            )
        elif settings.storage_type == "gcs":
            from labelsync.storage.gcs import GCSBlobStore

            _store = GCSBlobStore(
                bucket=settings.storage_gcs_bucket,
                project=settings.storage_gcs_project,
                credentials_file=settings.storage_gcs_credentials_file,
            )
        elif settings.storage_type == "memory":
            _store = MemoryBlobStore()
        else:
            _store = LocalBlobStore(base_path=settings.storage_local_path)

    return _store


def get_fallback_store() -> BlobStore | None:
    """Get the local snapshot store, or None when no fallback is configured."""
    global _fallback
    if _fallback is None:
        from labelsync.config import get_settings

        settings = get_settings()
        if settings.fallback_local_path:
            _fallback = LocalBlobStore(base_path=settings.fallback_local_path)

    return _fallback


def reset_storage() -> None:
    """Reset store instances (for testing)."""
    global _store, _fallback
    _store = None
    _fallback = None
