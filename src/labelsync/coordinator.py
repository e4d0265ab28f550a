"""Client-side save coordinator: batches rapid per-record saves.

WHY
───
An operator tagging images fires one save per click. Sending each one as its
own request makes every browser session hammer the same document and burns
through the server's conflict retries. The coordinator collects saves for a
short quiet period and sends them as one batch.

ARCHITECTURE
────────────
::

    SaveCoordinator
      ├── .enqueue(record, dataset)  returns a future, never blocks
      ├── per-dataset _Partition     queue + debounce timer + in-flight task
      ├── .drain()                   flush everything now and wait
      └── .close()                   drain, then refuse new records

    enqueue ──▶ queue ──(debounce | high-water)──▶ flush ──▶ transport
                  ▲                                  │
                  └──── records queued mid-flight ◀──┘  (next flush)

Each dataset flushes independently and has at most one flush in flight.
Within a flush only the newest record per key is sent; every caller whose
record was folded into the batch gets the batch's outcome.

Example::

    coordinator = SaveCoordinator(HttpSaveTransport(http_client))
    ok = await coordinator.enqueue(record, "ptz")
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from labelsync.datasets import get_dataset
from labelsync.errors import FlushTransportError
from labelsync.logging import get_logger
from labelsync.records import Record, record_key, validate_batch

logger = get_logger(__name__)

SaveTransport = Callable[[str, list[Record]], Awaitable[Any]]


@dataclass
class _PendingSave:
    record: Record
    future: asyncio.Future[bool]


@dataclass
class _Partition:
    dataset: str
    queue: list[_PendingSave] = field(default_factory=list)
    timer: asyncio.TimerHandle | None = None
    in_flight: asyncio.Task[FlushTransportError | None] | None = None

    @property
    def idle(self) -> bool:
        return not self.queue and self.timer is None and self.in_flight is None


class SaveCoordinator:
    """Debounced, coalescing, single-flight batcher for record saves.

    Parameters
    ----------
    transport : SaveTransport
        ``await transport(dataset_id, records)`` delivers one batch; it must
        raise on failure.
    debounce_seconds : float
        Quiet period between the first enqueue and the flush (default 0.5).
    high_water_mark : int
        Flush without waiting once more than this many saves are queued.
    flush_timeout : float | None
        Upper bound on one transport call. ``None`` disables it.
    """

    def __init__(
        self,
        transport: SaveTransport,
        *,
        debounce_seconds: float = 0.5,
        high_water_mark: int = 10,
        flush_timeout: float | None = None,
    ) -> None:
        if high_water_mark < 1:
            raise ValueError("high_water_mark must be at least 1")
        self._transport = transport
        self.debounce_seconds = debounce_seconds
        self.high_water_mark = high_water_mark
        self.flush_timeout = flush_timeout
        self._partitions: dict[str, _Partition] = {}
        self._closed = False

    @classmethod
    def from_settings(cls, transport: SaveTransport, settings=None) -> SaveCoordinator:
        """Build a coordinator from :class:`~labelsync.config.Settings`."""
        from labelsync.config import get_settings

        settings = settings or get_settings()
        return cls(
            transport,
            debounce_seconds=settings.client_debounce_seconds,
            high_water_mark=settings.client_high_water_mark,
            flush_timeout=settings.client_flush_timeout_seconds,
        )

    # ── Enqueue ──────────────────────────────────────────────────────

    def enqueue(self, record: Record, dataset_id: str | None) -> asyncio.Future[bool]:
        """Queue ``record`` for the next flush of ``dataset_id``.

        Returns a future that resolves to ``True`` once the batch holding the
        record is saved, or raises :class:`FlushTransportError` if it is not.
        Must be called from inside a running event loop.

        Raises:
            InvalidInputError: If the record has no key or the dataset is unknown.
            RuntimeError: If the coordinator has been closed.
        """
        if self._closed:
            raise RuntimeError("SaveCoordinator is closed")
        validate_batch([record])
        dataset = get_dataset(dataset_id).id

        loop = asyncio.get_running_loop()
        partition = self._partitions.setdefault(dataset, _Partition(dataset))
        future: asyncio.Future[bool] = loop.create_future()
        partition.queue.append(_PendingSave(record=record, future=future))

        if partition.in_flight is None:
            self._schedule(partition)
        return future

    def pending_count(self, dataset_id: str | None = None) -> int:
        """Number of queued (not yet sent) saves, for one dataset or all."""
        if dataset_id is not None:
            partition = self._partitions.get(get_dataset(dataset_id).id)
            return len(partition.queue) if partition else 0
        return sum(len(p.queue) for p in self._partitions.values())

    # ── Flushing ─────────────────────────────────────────────────────

    def _schedule(self, partition: _Partition) -> None:
        if len(partition.queue) > self.high_water_mark:
            self._cancel_timer(partition)
            self._start_flush(partition)
        elif partition.timer is None and partition.queue:
            loop = asyncio.get_running_loop()
            partition.timer = loop.call_later(self.debounce_seconds, self._start_flush, partition)

    def _cancel_timer(self, partition: _Partition) -> None:
        if partition.timer is not None:
            partition.timer.cancel()
            partition.timer = None

    def _start_flush(self, partition: _Partition) -> None:
        partition.timer = None
        if partition.in_flight is not None or not partition.queue:
            return
        batch, partition.queue = partition.queue, []
        task = asyncio.get_running_loop().create_task(self._flush(partition.dataset, batch))
        task.add_done_callback(functools.partial(self._settle, partition, batch))
        partition.in_flight = task

    async def _flush(
        self, dataset: str, batch: list[_PendingSave]
    ) -> FlushTransportError | None:
        latest: dict[str, Record] = {}
        for item in batch:
            latest[record_key(item.record)] = item.record
        records = list(latest.values())

        try:
            if self.flush_timeout is None:
                await self._transport(dataset, records)
            else:
                async with asyncio.timeout(self.flush_timeout):
                    await self._transport(dataset, records)
        except TimeoutError as e:
            return FlushTransportError(
                f"Flush to {dataset} timed out after {self.flush_timeout}s", cause=e
            )
        except FlushTransportError as e:
            return e
        except Exception as e:
            return FlushTransportError(f"Flush to {dataset} failed: {e}", cause=e)

        logger.info("flush_completed", dataset=dataset, queued=len(batch), sent=len(records))
        return None

    def _settle(
        self,
        partition: _Partition,
        batch: list[_PendingSave],
        task: asyncio.Task[FlushTransportError | None],
    ) -> None:
        # Runs however the flush task ended, including cancellation before it started
        if task.cancelled():
            error = FlushTransportError(f"Flush to {partition.dataset} was cancelled")
        else:
            error = task.result()

        if error is not None:
            logger.warning(
                "flush_failed",
                dataset=partition.dataset,
                queued=len(batch),
                error=error.message,
            )

        for item in batch:
            if item.future.done():
                continue
            if error is None:
                item.future.set_result(True)
            else:
                item.future.set_exception(error)

        partition.in_flight = None
        self._schedule(partition)

    # ── Shutdown ─────────────────────────────────────────────────────

    async def drain(self) -> None:
        """Flush every queued save now and wait until all partitions are idle.

        Cancelling the wait (for example with :func:`asyncio.wait_for`) leaves
        in-flight flushes running; their callers still get an outcome.
        """
        while True:
            in_flight = []
            for partition in self._partitions.values():
                if partition.in_flight is None and partition.queue:
                    self._cancel_timer(partition)
                    self._start_flush(partition)
                if partition.in_flight is not None:
                    in_flight.append(partition.in_flight)
            if not in_flight:
                return
            await asyncio.gather(*(asyncio.shield(t) for t in in_flight), return_exceptions=True)

    async def close(self) -> None:
        """Drain pending saves and stop accepting new ones."""
        self._closed = True
        await self.drain()

    @property
    def idle(self) -> bool:
        """True when nothing is queued, scheduled or in flight."""
        return all(p.idle for p in self._partitions.values())
