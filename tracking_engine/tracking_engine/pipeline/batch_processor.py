"""In-memory interaction queue with periodic, bounded batch delivery.

The :class:`BatchProcessor` buffers interaction records and drains them to a
:class:`~tracking_engine.sink.base.RemoteSink` in batches of at most
``batch_size``, either on a fixed interval or as soon as the queue reaches
``batch_size`` records.

Everything runs on one asyncio event loop.  Enqueue, update-by-id and the
batch selection are synchronous; the only suspension points are the sink
calls and backoff waits.  The ``_processing`` flag is a non-blocking
try-lock: a drain requested while another is in flight is a no-op.

Per-record lifecycle::

    Pending -> Dispatching -> Delivered
                           -> RetryPending -> Dispatching -> ...
                           -> Abandoned

Retryable failures go back to the *head* of the queue, so they are
re-attempted before newer records, and stay ineligible until their backoff
has elapsed.  Once a record has been dispatched it is immutable: updates
that arrive after that point are dropped (an accepted data-loss window, the
remote row is not addressable from here).

INVARIANT: Nothing in this module raises into the code that enqueues
records.  Delivery problems are logged and surface only as a pending count
that does not go down.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections import deque
from dataclasses import dataclass

from tracking_engine.models.interaction import InteractionRecord, ResponseUpdate
from tracking_engine.sink.base import FailureKind, RemoteSink, SinkResult
from tracking_engine.sink.retry import RetryPolicy

logger = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class _PendingEntry:
    """A queued record plus its delivery bookkeeping."""

    record: InteractionRecord
    attempts: int = 0
    not_before: float = 0.0

    @property
    def dispatched(self) -> bool:
        return self.attempts > 0


class BatchProcessor:
    """Buffers interaction records and delivers them in bounded batches.

    Parameters
    ----------
    sink:
        Where records are delivered.
    batch_size:
        Maximum records per drain, and the queue length that triggers an
        immediate drain (default: 10).
    flush_interval:
        Seconds between periodic drains (default: 5s).
    retry_policy:
        Decides whether and when a failed record is re-attempted.
    """

    def __init__(
        self,
        sink: RemoteSink,
        *,
        batch_size: int = 10,
        flush_interval: float = 5.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._sink = sink
        self._batch_size = batch_size
        self._flush_interval = flush_interval
        self._retry_policy = retry_policy or RetryPolicy()

        self._pending: deque[_PendingEntry] = deque()
        self._processing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._accepting_retries = True

        self._timer_task: asyncio.Task[None] | None = None
        self._scheduled_drain: asyncio.Task[int] | None = None
        self._shutdown_task: asyncio.Task[None] | None = None

        self._delivered = 0
        self._abandoned = 0

    # -- Introspection -------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def delivered_count(self) -> int:
        return self._delivered

    @property
    def abandoned_count(self) -> int:
        return self._abandoned

    def pending_records(self) -> list[InteractionRecord]:
        """Return the queued records in dispatch order."""
        return [entry.record for entry in self._pending]

    # -- Enqueue / update ----------------------------------------------------

    def enqueue(self, record: InteractionRecord) -> None:
        """Append *record* to the tail of the queue.

        Reaching ``batch_size`` pending records schedules one immediate drain
        on the running event loop, in addition to the periodic timer.
        """
        self._pending.append(_PendingEntry(record=record))
        if len(self._pending) >= self._batch_size:
            self._schedule_drain()

    def update(self, prompt_id: str, update: ResponseUpdate) -> bool:
        """Merge *update* into the first pending, not yet dispatched record with *prompt_id*.

        The record keeps its queue position.  Returns ``False`` (and logs at
        debug level) when no such record is queued, e.g. because it has
        already been sent.
        """
        for entry in self._pending:
            if entry.record.prompt_id == prompt_id and not entry.dispatched:
                entry.record = entry.record.merged_with(update)
                return True
        logger.debug("Could not find pending interaction with prompt_id=%s; update dropped", prompt_id)
        return False

    # -- Draining ------------------------------------------------------------

    async def drain(self) -> int:
        """Dispatch up to ``batch_size`` due records from the head of the queue.

        Records in the batch are sent concurrently.  Returns the number of
        records taken from the queue (0 if another drain is in flight or
        nothing is due).
        """
        if self._processing or not self._pending:
            return 0

        self._processing = True
        self._idle.clear()
        try:
            batch = self._take_batch()
            if not batch:
                return 0

            try:
                requeue = await asyncio.gather(*(self._dispatch(entry) for entry in batch))
            except asyncio.CancelledError:
                # Interrupted mid-send (e.g. a flush timeout): keep the batch.
                self._pending.extendleft(reversed(batch))
                raise

            retries = [entry for entry, again in zip(batch, requeue, strict=True) if again]
            for entry in reversed(retries):
                self._pending.appendleft(entry)

            logger.debug(
                "Drained %d interaction(s): %d to retry, %d pending",
                len(batch),
                len(retries),
                len(self._pending),
            )
            return len(batch)
        finally:
            self._processing = False
            self._idle.set()

    async def flush(self, timeout: float | None = None) -> None:
        """Drain until the queue is empty and no drain is in flight.

        Waits out an in-flight drain rather than returning early, and sleeps
        until the next backing-off record becomes due when nothing else is
        eligible.

        Raises
        ------
        TimeoutError
            If *timeout* seconds elapse first.  Records whose send was
            interrupted stay queued.
        """
        if timeout is None:
            await self._flush_until_empty()
        else:
            await asyncio.wait_for(self._flush_until_empty(), timeout)

    async def _flush_until_empty(self) -> None:
        loop = asyncio.get_running_loop()
        while self._pending or self._processing:
            if self._processing:
                await self._idle.wait()
                continue
            earliest = min(entry.not_before for entry in self._pending)
            wait = earliest - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
                continue
            await self.drain()

    def _take_batch(self) -> list[_PendingEntry]:
        """Remove up to ``batch_size`` due entries, scanning from the head.

        Entries still backing off keep their positions.
        """
        now = asyncio.get_running_loop().time()
        batch: list[_PendingEntry] = []
        kept: deque[_PendingEntry] = deque()
        for entry in self._pending:
            if len(batch) < self._batch_size and entry.not_before <= now:
                batch.append(entry)
            else:
                kept.append(entry)
        self._pending = kept
        return batch

    async def _dispatch(self, entry: _PendingEntry) -> bool:
        """Send one record; return ``True`` if it should be re-queued."""
        entry.attempts += 1
        try:
            result = await self._sink.send(entry.record)
        except Exception as exc:
            logger.warning("Sink raised while sending prompt_id=%s", entry.record.prompt_id, exc_info=True)
            result = SinkResult.failure(FailureKind.UNKNOWN, str(exc))

        if result.ok:
            self._delivered += 1
            return False

        kind = result.kind or FailureKind.UNKNOWN
        if kind is FailureKind.VALIDATION:
            logger.debug("Dropping interaction prompt_id=%s: %s", entry.record.prompt_id, result.message)
            self._abandoned += 1
            return False

        delay = self._retry_policy.next_delay(kind, entry.attempts) if self._accepting_retries else None
        if delay is None:
            logger.warning(
                "Abandoning interaction prompt_id=%s after %d attempt(s) (%s): %s",
                entry.record.prompt_id,
                entry.attempts,
                kind.value,
                result.message,
            )
            self._abandoned += 1
            return False

        entry.not_before = asyncio.get_running_loop().time() + delay
        return True

    def _schedule_drain(self) -> None:
        if self._scheduled_drain is not None and not self._scheduled_drain.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; threshold drain deferred")
            return
        self._scheduled_drain = loop.create_task(self.drain())
        self._scheduled_drain.add_done_callback(_log_task_failure)

    # -- Lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Start the periodic drain on the running event loop."""
        if self.is_running:
            return
        self._accepting_retries = True
        self._timer_task = asyncio.get_running_loop().create_task(self._run_timer(), name="tracking-flush")
        logger.info(
            "Tracking batch processor started (interval=%.1fs, batch_size=%d)",
            self._flush_interval,
            self._batch_size,
        )

    async def stop(self) -> None:
        """Stop the periodic drain without flushing.

        A drain already in flight runs to completion; only the wait between
        drains is cancelled.
        """
        if self._timer_task is None:
            return
        task = self._timer_task
        try:
            while self._processing:
                await self._idle.wait()
        finally:
            self._timer_task = None
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop the timer and make one best-effort flush.

        A periodic drain already in flight is allowed to finish, and
        *timeout* covers that wait as well as the flush.  No new retries are
        scheduled from here on: a transient failure abandons the record.
        """
        logger.debug("Flushing %d pending interaction(s) before shutdown", len(self._pending))
        self._accepting_retries = False
        try:
            await asyncio.wait_for(self._stop_and_flush(), timeout)
        except TimeoutError:
            logger.warning("Shutdown flush timed out with %d interaction(s) pending", len(self._pending))

    async def _stop_and_flush(self) -> None:
        await self.stop()
        await self._flush_until_empty()

    def install_signal_handlers(self, timeout: float | None = None) -> bool:
        """Run :meth:`shutdown` on SIGINT/SIGTERM, then re-deliver the signal.

        Returns ``False`` where the event loop does not support signal
        handlers (e.g. Windows).
        """
        loop = asyncio.get_running_loop()
        try:
            for sig in _SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, self._on_signal, sig, timeout)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers not supported on this event loop")
            return False
        return True

    def _on_signal(self, sig: signal.Signals, timeout: float | None) -> None:
        if self._shutdown_task is not None:
            return
        loop = asyncio.get_running_loop()
        logger.debug("Received %s; flushing pending interactions", sig.name)
        self._shutdown_task = loop.create_task(self.shutdown(timeout))

        def _reraise(task: asyncio.Task[None]) -> None:
            _log_task_failure(task)
            for handled in _SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(handled)
            signal.raise_signal(sig)

        self._shutdown_task.add_done_callback(_reraise)

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval)
            try:
                await self.drain()
            except Exception:
                logger.warning("Periodic interaction drain failed", exc_info=True)


def _log_task_failure(task: asyncio.Task[object]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Background interaction drain failed", exc_info=exc)
