"""
Structured error types for labelsync.

Every error carries a category and an explicit retry flag so the commit
loop, the API layer and the client coordinator can decide what to do with
it without string matching.

Hierarchy::

    LabelSyncError
    ├── InvalidInputError              (VALIDATION, never retried)
    │   └── UnknownDatasetError
    ├── DocumentNotFoundError          (nothing saved yet for a dataset)
    ├── ConcurrentModificationConflict (CONFLICT, retried by the commit loop)
    │   └── PreconditionFailedError    (raised by stores on generation mismatch)
    ├── StorageUnavailableError        (STORAGE)
    ├── SaveFailedError                (STORAGE, retries exhausted or timed out)
    └── FlushTransportError            (NETWORK, client batch rejected)

Usage:
    from labelsync.errors import PreconditionFailedError

    try:
        store.put_if_generation(path, document, generation)
    except PreconditionFailedError:
        ...  # re-read and merge again
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    VALIDATION = "VALIDATION"     # Empty batch, wrong shape, unknown dataset
    CONFLICT = "CONFLICT"         # Generation precondition failed
    STORAGE = "STORAGE"           # Object store, file system
    NETWORK = "NETWORK"           # Client <-> API transport
    INTERNAL = "INTERNAL"


class LabelSyncError(Exception):
    """
    Base exception for all labelsync errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance. ``cause`` is chained as ``__cause__``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LabelSyncError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class InvalidInputError(LabelSyncError):
    """Empty or malformed record batch. Rejected before any store access."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class UnknownDatasetError(InvalidInputError):
    """Dataset id does not name one of the configured partitions."""


class DocumentNotFoundError(LabelSyncError):
    """Dataset has no saved document yet."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class ConcurrentModificationConflict(LabelSyncError):
    """Another writer committed since this writer last read the document."""

    default_category = ErrorCategory.CONFLICT
    default_retryable = True


class PreconditionFailedError(ConcurrentModificationConflict):
    """Store rejected a conditional write because the generation moved."""

    def __init__(
        self,
        path: str,
        expected_generation: str | None,
        *,
        cause: Exception | None = None,
    ):
        super().__init__(
            f"Generation precondition failed for {path} (expected {expected_generation!r})",
            context={"path": path, "expected_generation": expected_generation},
            cause=cause,
        )
        self.path = path
        self.expected_generation = expected_generation


class StorageUnavailableError(LabelSyncError):
    """Transport, auth or other store failure that is not a conflict."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class SaveFailedError(LabelSyncError):
    """Commit loop gave up: retries exhausted or the save timed out."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


class FlushTransportError(LabelSyncError):
    """A batched client flush could not be delivered to the server."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message,
            context={"status_code": status_code} if status_code is not None else None,
            cause=cause,
        )
        self.status_code = status_code
