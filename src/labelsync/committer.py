"""
Server-side merge-and-commit loop.

Each save reads the dataset's document fresh from the store, merges the
incoming batch into it by key and writes it back conditionally on the
generation it read. A generation mismatch means another writer committed in
between: the loop backs off and starts again from a fresh read, up to a
bounded number of attempts.

State machine (per save)::

    ATTEMPTING(1) ──commit ok──────────────▶ COMMITTED
         │
         ├──precondition failed, n < max──▶ RETRYING(n+1) ──backoff──▶ ATTEMPTING(n+1)
         │
         └──store error / n == max / timeout──▶ FAILED

Failures never escape as exceptions: they come back as a :class:`SaveResult`
whose ``outcome`` says what went wrong. A failed save leaves the stored
document untouched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from labelsync.datasets import Dataset, get_dataset
from labelsync.errors import (
    InvalidInputError,
    LabelSyncError,
    PreconditionFailedError,
    SaveFailedError,
    StorageUnavailableError,
)
from labelsync.logging import get_logger
from labelsync.merge import merge_by_key
from labelsync.records import Record, record_key, validate_batch
from labelsync.retry import LinearBackoff, RetryStrategy, strategy_from_settings
from labelsync.storage import BlobStore

logger = get_logger(__name__)

Combine = Callable[[Sequence[Record], Sequence[Record]], list[Record]]


class SaveState(str, Enum):
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    COMMITTED = "committed"
    FAILED = "failed"


class SaveOutcome(str, Enum):
    COMMITTED = "committed"
    INVALID_INPUT = "invalid_input"
    CONFLICT_EXHAUSTED = "conflict_exhausted"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    TIMED_OUT = "timed_out"


@dataclass
class SaveResult:
    """What happened to one save call. Truthy only when committed."""

    dataset: str | None
    outcome: SaveOutcome | None = None
    attempts: int = 0
    records_saved: int = 0
    document_size: int = 0
    merged: bool = False
    generation: str | None = None
    error: LabelSyncError | None = None
    history: list[tuple[SaveState, int]] = field(default_factory=list)
    document: list[Record] | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.outcome is SaveOutcome.COMMITTED

    def __bool__(self) -> bool:
        return self.ok

    def enter(self, state: SaveState, attempt: int) -> None:
        self.history.append((state, attempt))
        if state is SaveState.ATTEMPTING:
            self.attempts = attempt

    def fail(self, outcome: SaveOutcome, error: LabelSyncError) -> SaveResult:
        self.outcome = outcome
        self.error = error
        self.history.append((SaveState.FAILED, self.attempts))
        return self


@dataclass
class LoadResult:
    """A document as served to readers."""

    dataset: str
    records: list[Record] | None
    source: str
    generation: str | None = None


class MergeCommitter:
    """
    Optimistic-concurrency writer for per-dataset documents.

    Parameters
    ----------
    store : BlobStore
        Primary generation-versioned store.
    max_attempts : int
        Attempt bound for one save, counting the first try (default 3).
    backoff : RetryStrategy
        Delay schedule between attempts; ``next_delay(0)`` is used before
        the second attempt.
    timeout_seconds : float | None
        Upper bound on one save. ``None`` disables it.
    fallback : BlobStore | None
        Local snapshot store. Committed documents are mirrored to it and
        :meth:`load` serves from it while the primary store is unavailable.
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        max_attempts: int = 3,
        backoff: RetryStrategy | None = None,
        timeout_seconds: float | None = None,
        fallback: BlobStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts
        self.backoff = backoff or LinearBackoff()
        self.timeout_seconds = timeout_seconds
        self.fallback = fallback
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings=None,
        store: BlobStore | None = None,
        fallback: BlobStore | None = None,
    ) -> MergeCommitter:
        """Build a committer from :class:`~labelsync.config.Settings`."""
        from labelsync.config import get_settings
        from labelsync.storage import get_fallback_store, get_store

        settings = settings or get_settings()
        return cls(
            store or get_store(),
            max_attempts=settings.save_max_attempts,
            backoff=strategy_from_settings(settings),
            timeout_seconds=settings.save_timeout_seconds,
            fallback=fallback if fallback is not None else get_fallback_store(),
        )

    # ── Writes ───────────────────────────────────────────────────────

    async def save(self, records: Sequence[Record], dataset_id: str | None) -> SaveResult:
        """Merge a partial batch into the dataset's document."""
        return await self._save(records, dataset_id, merge_by_key, merged=True)

    async def replace(self, records: Sequence[Record], dataset_id: str | None) -> SaveResult:
        """Overwrite the dataset's document with ``records``.

        Still conditional on the generation read, so a concurrent partial
        save is never silently lost: the replace retries against it instead.
        """
        return await self._save(records, dataset_id, _replace_all, merged=False)

    async def _save(
        self,
        records: Sequence[Record],
        dataset_id: str | None,
        combine: Combine,
        *,
        merged: bool,
    ) -> SaveResult:
        result = SaveResult(dataset=dataset_id)
        try:
            dataset = get_dataset(dataset_id)
            result.dataset = dataset.id
            batch = validate_batch(list(records))
        except InvalidInputError as e:
            logger.warning("save_rejected", dataset=dataset_id, error=e.message)
            return result.fail(SaveOutcome.INVALID_INPUT, e)

        result.records_saved = len({record_key(r) for r in batch})
        try:
            if self.timeout_seconds is None:
                await self._attempt_loop(dataset, batch, combine, result)
            else:
                async with asyncio.timeout(self.timeout_seconds):
                    await self._attempt_loop(dataset, batch, combine, result)
        except TimeoutError:
            # A write already handed to a worker thread may still land
            logger.error(
                "save_timed_out",
                dataset=dataset.id,
                attempts=result.attempts,
                timeout_seconds=self.timeout_seconds,
            )
            return result.fail(
                SaveOutcome.TIMED_OUT,
                SaveFailedError(f"Save to {dataset.id} timed out after {self.timeout_seconds}s"),
            )

        if result.ok:
            if not merged:
                result.merged = False
            await self._mirror(dataset, result)
        return result

    async def _attempt_loop(
        self,
        dataset: Dataset,
        batch: list[Record],
        combine: Combine,
        result: SaveResult,
    ) -> None:
        attempt = 1
        while True:
            result.enter(SaveState.ATTEMPTING, attempt)
            try:
                current = await asyncio.to_thread(self.store.get, dataset.path)
                if current is None:
                    document = combine([], batch)
                    expected = None
                else:
                    document = combine(current.records, batch)
                    expected = current.generation
                generation = await asyncio.to_thread(
                    self.store.put_if_generation, dataset.path, document, expected
                )
            except PreconditionFailedError as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "save_conflict_exhausted",
                        dataset=dataset.id,
                        attempts=attempt,
                    )
                    result.fail(
                        SaveOutcome.CONFLICT_EXHAUSTED,
                        SaveFailedError(
                            f"Gave up saving {dataset.id} after {attempt} conflicting attempts",
                            cause=e,
                        ),
                    )
                    return
                delay = self.backoff.next_delay(attempt - 1)
                logger.info(
                    "save_conflict",
                    dataset=dataset.id,
                    attempt=attempt,
                    retry_in=round(delay, 3),
                )
                result.enter(SaveState.RETRYING, attempt + 1)
                await self._sleep(delay)
                attempt += 1
                continue
            except StorageUnavailableError as e:
                logger.error(
                    "save_storage_unavailable",
                    dataset=dataset.id,
                    attempt=attempt,
                    error=e.message,
                )
                result.fail(SaveOutcome.STORAGE_UNAVAILABLE, e)
                return

            result.outcome = SaveOutcome.COMMITTED
            result.generation = generation
            result.document_size = len(document)
            result.merged = current is not None
            result.history.append((SaveState.COMMITTED, attempt))
            logger.info(
                "save_committed",
                dataset=dataset.id,
                attempt=attempt,
                records=len(batch),
                document_size=len(document),
                generation=generation,
            )
            result.document = document
            return

    async def _mirror(self, dataset: Dataset, result: SaveResult) -> None:
        document = result.document
        if self.fallback is None or document is None:
            return
        try:
            await asyncio.to_thread(self.fallback.put, dataset.path, document)
        except StorageUnavailableError as e:
            logger.warning("fallback_mirror_failed", dataset=dataset.id, error=e.message)

    # ── Reads ────────────────────────────────────────────────────────

    async def load(self, dataset_id: str | None) -> LoadResult:
        """Read the dataset's current document.

        Serves the fallback snapshot when the primary store is unavailable.

        Raises:
            UnknownDatasetError: If ``dataset_id`` names no partition.
            StorageUnavailableError: If neither store can be read.
        """
        dataset = get_dataset(dataset_id)
        try:
            current = await asyncio.to_thread(self.store.get, dataset.path)
        except StorageUnavailableError as e:
            if self.fallback is None:
                raise
            logger.warning("load_using_fallback", dataset=dataset.id, error=e.message)
            snapshot = await asyncio.to_thread(self.fallback.get, dataset.path)
            return LoadResult(
                dataset=dataset.id,
                records=snapshot.records if snapshot else None,
                source="fallback",
                generation=snapshot.generation if snapshot else None,
            )

        return LoadResult(
            dataset=dataset.id,
            records=current.records if current else None,
            source="store",
            generation=current.generation if current else None,
        )


def _replace_all(existing: Sequence[Record], incoming: Sequence[Record]) -> list[Record]:
    return merge_by_key([], incoming)
