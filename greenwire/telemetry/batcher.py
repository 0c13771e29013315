"""Batched, retrying delivery of telemetry events.

``EventBatcher`` owns the queue of recorded events. It flushes when the queue
reaches ``batch_size``, on a fixed background interval, and once more at
shutdown through the collector's best-effort path.

A flush drains the whole queue before sending. If delivery fails, the drained
events go back to the front of the queue, ahead of anything recorded while
the send was in flight, so retries preserve recording order. Each failure
counts against an event's delivery attempts; an event that reaches
``max_attempts`` is dropped and counted instead of re-queued. After a
failure, reaching ``batch_size`` no longer triggers a flush: the retry waits
for the next timer tick or an explicit :meth:`EventBatcher.flush`.

Usage
-----
>>> batcher = EventBatcher(HttpCollectorTransport("https://collector.test/ingest"))
>>> batcher.start()             # inside a running event loop
>>> batcher.enqueue(event)
>>> await batcher.aclose()      # stops the timer and flushes best-effort

"""

from __future__ import annotations

import asyncio
import atexit
import contextlib
import dataclasses as dc
import typing as typ

from greenwire.common.time import epoch_ms

from .models import BatchPayload
from .observability import TelemetryEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from greenwire.common.time import Clock

    from .collector import CollectorTransport
    from .models import TelemetryEvent


class EventSink(typ.Protocol):
    """Anything that accepts recorded telemetry events."""

    def enqueue(self, event: TelemetryEvent) -> None:
        """Accept ``event`` for later delivery."""
        ...


@dc.dataclass(frozen=True, slots=True)
class BatcherSettings:
    """Flush and retry policy.

    Attributes
    ----------
    batch_size
        Queue length that triggers an immediate flush.
    flush_interval_s
        Period of the background flush.
    max_attempts
        Failed deliveries an event survives before being dropped. ``None``
        retries forever.

    """

    batch_size: int = 10
    flush_interval_s: float = 30.0
    max_attempts: int | None = 5

    def __post_init__(self) -> None:
        """Reject non-positive limits."""
        if self.batch_size < 1:
            msg = f"batch_size must be positive, got: {self.batch_size}"
            raise ValueError(msg)
        if self.flush_interval_s <= 0:
            msg = f"flush_interval_s must be positive, got: {self.flush_interval_s}"
            raise ValueError(msg)
        if self.max_attempts is not None and self.max_attempts < 1:
            msg = f"max_attempts must be positive, got: {self.max_attempts}"
            raise ValueError(msg)


@dc.dataclass(frozen=True, slots=True)
class BatcherStats:
    """Delivery counters for one batcher."""

    queued: int
    delivered: int
    dropped: int
    failed_flushes: int
    last_flush_ms: float | None


@dc.dataclass(slots=True)
class _PendingEvent:
    event: TelemetryEvent
    attempts: int = 0


class EventBatcher:
    """Queue telemetry events and deliver them in batches.

    Parameters
    ----------
    transport
        Collector transport used for both delivery paths.
    settings
        Flush and retry policy; defaults apply when omitted.
    client_context
        Static descriptive fields attached to every batch.
    clock
        Wall clock in milliseconds, used for batch timestamps.
    event_logger
        Structured logger for delivery outcomes.

    """

    def __init__(
        self,
        transport: CollectorTransport,
        *,
        settings: BatcherSettings | None = None,
        client_context: cabc.Mapping[str, str] | None = None,
        clock: Clock = epoch_ms,
        event_logger: TelemetryEventLogger | None = None,
    ) -> None:
        """Create an idle batcher; call :meth:`start` to run the timer."""
        self._transport = transport
        self._settings = settings or BatcherSettings()
        self._client_context = dict(client_context or {})
        self._clock = clock
        self._event_logger = event_logger or TelemetryEventLogger()

        self._queue: list[_PendingEvent] = []
        self._send_lock = asyncio.Lock()
        self._timer: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[bool]] = set()
        self._flush_scheduled = False
        self._retry_pending = False
        self._closed = False
        self._hook_installed = False

        self._delivered = 0
        self._dropped = 0
        self._failed_flushes = 0
        self._last_flush_ms: float | None = None

    @property
    def settings(self) -> BatcherSettings:
        """Flush and retry policy."""
        return self._settings

    @property
    def closed(self) -> bool:
        """True once the shutdown flush has run."""
        return self._closed

    def pending(self) -> tuple[TelemetryEvent, ...]:
        """Return queued events in delivery order."""
        return tuple(item.event for item in self._queue)

    def stats(self) -> BatcherStats:
        """Return delivery counters."""
        return BatcherStats(
            queued=len(self._queue),
            delivered=self._delivered,
            dropped=self._dropped,
            failed_flushes=self._failed_flushes,
            last_flush_ms=self._last_flush_ms,
        )

    def enqueue(self, event: TelemetryEvent) -> None:
        """Append ``event``; schedule a flush once the queue is full.

        Outside a running event loop the event simply waits for the next
        timer tick or the shutdown flush. Once the batcher is closed the
        event is counted as dropped instead of queued.
        """
        if self._closed:
            self._dropped += 1
            self._event_logger.log_event_rejected(event)
            return
        self._queue.append(_PendingEvent(event))
        if len(self._queue) >= self._settings.batch_size and not self._retry_pending:
            self._schedule_flush()

    def _schedule_flush(self) -> None:
        if self._flush_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._flush_scheduled = True
        task = loop.create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def start(self) -> None:
        """Start the periodic flush timer on the running event loop."""
        if self._timer is not None or self._closed:
            return
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self._settings.flush_interval_s)
            self._retry_pending = False
            await self.flush()

    async def _stop_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await timer

    def _drain(self) -> list[_PendingEvent]:
        batch, self._queue = self._queue, []
        return batch

    def _build_payload(self, batch: list[_PendingEvent]) -> BatchPayload:
        return BatchPayload(
            session_id=batch[0].event.session_id,
            events=[item.event for item in batch],
            timestamp_ms=self._clock(),
            client_context=self._client_context,
        )

    def _requeue(self, batch: list[_PendingEvent], error: BaseException) -> None:
        max_attempts = self._settings.max_attempts
        retained: list[_PendingEvent] = []
        for item in batch:
            item.attempts += 1
            if max_attempts is None or item.attempts < max_attempts:
                retained.append(item)
        dropped = len(batch) - len(retained)

        self._queue[:0] = retained
        self._failed_flushes += 1
        self._dropped += dropped
        self._retry_pending = True

        session_id = batch[0].event.session_id
        self._event_logger.log_batch_failed(
            session_id=session_id,
            event_count=len(batch),
            requeued=len(retained),
            error=error,
        )
        if dropped:
            self._event_logger.log_events_dropped(
                session_id=session_id,
                dropped=dropped,
                max_attempts=max_attempts or 0,
            )

    def _record_delivery(self, batch: list[_PendingEvent]) -> None:
        self._delivered += len(batch)
        self._last_flush_ms = self._clock()
        self._retry_pending = False

    async def flush(self, *, forced: bool = False) -> bool:
        """Drain the queue and deliver it as one batch.

        Parameters
        ----------
        forced
            Use the collector's best-effort path instead of ``send``. The
            blocking call runs in a worker thread.

        Returns
        -------
        bool
            True when the queue was empty or the batch was delivered; False
            when delivery failed and the events were re-queued or dropped.
            A closed batcher has nothing left to send and returns True.

        """
        async with self._send_lock:
            self._flush_scheduled = False
            if self._closed:
                return True
            batch = self._drain()
            if not batch:
                return True
            payload = self._build_payload(batch)
            if forced:
                try:
                    delivered, error = await asyncio.to_thread(
                        self._call_best_effort, payload
                    )
                except asyncio.CancelledError:
                    self._queue[:0] = batch
                    raise
                self._settle_best_effort(
                    batch, payload, delivered, error, requeue=True
                )
                return delivered

            try:
                await self._transport.send(payload)
            except asyncio.CancelledError:
                self._queue[:0] = batch
                raise
            except Exception as exc:  # noqa: BLE001 - delivery failures stay inside the batcher
                self._requeue(batch, exc)
                return False

            self._record_delivery(batch)
            self._event_logger.log_batch_delivered(
                session_id=payload.session_id, event_count=len(batch)
            )
            return True

    def _call_best_effort(self, payload: BatchPayload) -> tuple[bool, BaseException | None]:
        try:
            return self._transport.send_best_effort(payload), None
        except Exception as exc:  # noqa: BLE001 - best-effort path never raises
            return False, exc

    def _settle_best_effort(  # noqa: PLR0913
        self,
        batch: list[_PendingEvent],
        payload: BatchPayload,
        delivered: bool,  # noqa: FBT001
        error: BaseException | None,
        *,
        requeue: bool,
    ) -> None:
        if delivered:
            self._record_delivery(batch)
        elif requeue:
            self._requeue(batch, error or RuntimeError("best-effort delivery refused"))
        else:
            self._dropped += len(batch)

        self._event_logger.log_shutdown_flushed(
            session_id=payload.session_id,
            event_count=len(batch),
            delivered=delivered,
        )

    def shutdown(self) -> None:
        """Flush once through the best-effort path and stop accepting events.

        Safe to call without a running event loop, and more than once; only
        the first call sends. Events that fail here, or arrive afterwards,
        are counted as dropped.
        """
        if self._closed:
            return
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        batch = self._drain()
        if not batch:
            return
        payload = self._build_payload(batch)
        delivered, error = self._call_best_effort(payload)
        self._settle_best_effort(batch, payload, delivered, error, requeue=False)

    async def aclose(self) -> None:
        """Stop the timer, wait for in-flight flushes, then shut down."""
        await self._stop_timer()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        async with self._send_lock:
            self.shutdown()

    def install_shutdown_hook(self) -> None:
        """Register :meth:`shutdown` to run at interpreter exit."""
        if self._hook_installed:
            return
        atexit.register(self.shutdown)
        self._hook_installed = True
