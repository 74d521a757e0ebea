"""
RequestQueue - Bounds concurrency toward the backend and coalesces batches.

Units of work are dispatched in arrival order by a single drain task. A
semaphore caps how many run at once. Work submitted with a batch key is held
back until the batch is full or its idle timer fires, then appended to the
main queue as one contiguous block.
"""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from loguru import logger

if TYPE_CHECKING:
    from chorus.settings import Settings

T = TypeVar("T")


@dataclass
class QueueConfig:
    """Configuration for the request queue."""

    max_concurrent: int = 10
    batch_delay: float = 0.05  # Idle seconds before a pending batch flushes
    max_batch_size: int = 20

    @classmethod
    def from_settings(cls, settings: "Settings") -> "QueueConfig":
        return cls(
            max_concurrent=settings.queue_max_concurrent,
            batch_delay=settings.queue_batch_delay_ms / 1000,
            max_batch_size=settings.queue_max_batch_size,
        )


@dataclass
class QueuedUnit:
    """A deferred action and the future its caller is awaiting."""

    id: str
    action: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    enqueued_at: float
    batch_key: str | None = None
    priority: int | None = None


@dataclass
class PendingBatch:
    """Units sharing a batch key that have not been flushed yet."""

    key: str
    units: list[QueuedUnit] = field(default_factory=list)
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


@dataclass
class QueueStats:
    """Point-in-time queue statistics."""

    queue_length: int = 0
    in_flight: int = 0
    pending_batches: int = 0
    enqueued: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "queueLength": self.queue_length,
            "inFlight": self.in_flight,
            "pendingBatches": self.pending_batches,
            "enqueued": self.enqueued,
            "completed": self.completed,
            "failed": self.failed,
        }


class RequestQueue:
    """
    Concurrency-limited FIFO queue with optional batch coalescing.

    Usage:
        queue = RequestQueue(QueueConfig(max_concurrent=10))

        clip = await queue.enqueue(lambda: store.load_clip(clip_id))

        # Votes issued within the batch window are dispatched together
        await asyncio.gather(
            *(queue.enqueue(make_vote(v), batch_key="votes") for v in votes)
        )

    `priority` is accepted for interface compatibility but dispatch order is
    always FIFO.
    """

    def __init__(self, config: QueueConfig | None = None, debug: bool = False):
        self.config = config or QueueConfig()
        self._queue: deque[QueuedUnit] = deque()
        self._batches: dict[str, PendingBatch] = {}
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent)
        self._in_flight = 0
        self._drain_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._debug = debug

        self._enqueued = 0
        self._completed = 0
        self._failed = 0

    def enqueue(
        self,
        action: Callable[[], Awaitable[T]],
        *,
        batch_key: str | None = None,
        priority: int | None = None,
    ) -> "asyncio.Future[T]":
        """
        Queue `action` for execution.

        Must be called from a running event loop. The returned future settles
        with the action's result or with the exact exception it raised.

        Args:
            action: Zero-argument coroutine function
            batch_key: Coalesce with other units carrying the same key
            priority: Accepted and ignored; dispatch is FIFO

        Returns:
            Future resolved with the action's outcome
        """
        loop = asyncio.get_running_loop()
        unit = QueuedUnit(
            id=f"req-{uuid.uuid4().hex[:12]}",
            action=action,
            future=loop.create_future(),
            enqueued_at=time.monotonic(),
            batch_key=batch_key,
            priority=priority,
        )
        self._enqueued += 1

        if batch_key:
            self._add_to_batch(batch_key, unit, loop)
        else:
            self._queue.append(unit)
            self._log(f"ENQUEUE: {unit.id} (queue: {len(self._queue)})")

        self._ensure_draining()
        return unit.future

    def _add_to_batch(
        self,
        batch_key: str,
        unit: QueuedUnit,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        batch = self._batches.get(batch_key)
        if batch is None:
            batch = PendingBatch(key=batch_key)
            self._batches[batch_key] = batch

        batch.units.append(unit)

        if len(batch.units) >= self.config.max_batch_size:
            self._flush_batch(batch_key)
            return

        # Only one live timer per key; each arrival pushes the flush back
        batch.cancel_timer()
        batch.timer = loop.call_later(
            self.config.batch_delay, self._flush_batch, batch_key
        )

    def _flush_batch(self, batch_key: str) -> None:
        """Move a pending batch onto the main queue as a contiguous block."""
        batch = self._batches.pop(batch_key, None)
        if batch is None:
            return

        batch.cancel_timer()
        self._queue.extend(batch.units)
        self._log(f"FLUSH: batch '{batch_key}' with {len(batch.units)} units")
        self._ensure_draining()

    def _ensure_draining(self) -> None:
        if not self._queue:
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._queue:
            await self._semaphore.acquire()

            # clear() may have emptied the queue while we waited for a permit
            if not self._queue:
                self._semaphore.release()
                break

            unit = self._queue.popleft()
            self._in_flight += 1
            task = asyncio.get_running_loop().create_task(self._execute(unit))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _execute(self, unit: QueuedUnit) -> None:
        try:
            result = await unit.action()
        except asyncio.CancelledError:
            if not unit.future.done():
                unit.future.cancel()
            raise
        except Exception as e:
            self._failed += 1
            self._log(f"FAILED: {unit.id}: {type(e).__name__}")
            if not unit.future.done():
                unit.future.set_exception(e)
        else:
            self._completed += 1
            if not unit.future.done():
                unit.future.set_result(result)
        finally:
            self._in_flight -= 1
            self._semaphore.release()

    def get_stats(self) -> QueueStats:
        """Get a snapshot of queue statistics. Has no side effects."""
        return QueueStats(
            queue_length=len(self._queue),
            in_flight=self._in_flight,
            pending_batches=len(self._batches),
            enqueued=self._enqueued,
            completed=self._completed,
            failed=self._failed,
        )

    def clear(self) -> None:
        """
        Drop queued work and pending batches.

        Futures of dropped units are left pending. Intended for tests and
        resets only; in-flight units are unaffected.
        """
        dropped = len(self._queue)
        self._queue.clear()
        for batch in self._batches.values():
            batch.cancel_timer()
            dropped += len(batch.units)
        self._batches.clear()
        if dropped:
            logger.warning(f"RequestQueue cleared, {dropped} queued units dropped")

    async def aclose(self) -> None:
        """Flush pending batches and wait for all queued and in-flight work."""
        for batch_key in list(self._batches):
            self._flush_batch(batch_key)

        while True:
            pending = [
                task
                for task in (self._drain_task, *self._tasks)
                if task is not None and not task.done()
            ]
            if not pending:
                break
            await asyncio.wait(pending)

        logger.debug("RequestQueue closed")

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[RequestQueue] {message}")


async def rate_limited(
    queue: RequestQueue,
    action: Callable[[], Awaitable[T]],
    *,
    batch_key: str | None = None,
    priority: int | None = None,
) -> T:
    """Run `action` through `queue` and return its result."""
    return await queue.enqueue(action, batch_key=batch_key, priority=priority)
