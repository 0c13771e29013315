"""Unit tests for batched telemetry delivery."""

from __future__ import annotations

import asyncio
import contextlib
import time

import pytest

from greenwire.telemetry import batcher as batcher_module
from greenwire.telemetry.batcher import BatcherSettings, EventBatcher
from greenwire.telemetry.models import BatchPayload, TelemetryContext, TelemetryEvent
from tests.unit.pipeline_test_helpers import FakeCollector


def _event(index: int, session_id: str = "eco_batch") -> TelemetryEvent:
    return TelemetryEvent(
        session_id=session_id,
        kind="button_click",
        timestamp_ms=float(index),
        context=TelemetryContext(attributes={"index": index}),
        cost_estimate=0.001,
        energy_estimate=0.0025,
    )


def _indices(events: tuple[TelemetryEvent, ...] | list[TelemetryEvent]) -> list[object]:
    return [event.context.attributes["index"] for event in events]


class _SlowBestEffortCollector(FakeCollector):
    """Collector whose best-effort path blocks like a synchronous POST."""

    def __init__(self, delay_s: float) -> None:
        super().__init__()
        self._delay_s = delay_s

    def send_best_effort(self, payload: BatchPayload) -> bool:
        """Block for ``delay_s`` before accepting the payload."""
        time.sleep(self._delay_s)
        return super().send_best_effort(payload)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _batcher(
    collector: FakeCollector,
    *,
    batch_size: int = 10,
    max_attempts: int | None = 5,
    flush_interval_s: float = 30.0,
) -> EventBatcher:
    return EventBatcher(
        collector,
        settings=BatcherSettings(
            batch_size=batch_size,
            flush_interval_s=flush_interval_s,
            max_attempts=max_attempts,
        ),
        client_context={"app": "dashboard"},
        clock=lambda: 42.0,
    )


class TestFlush:
    """Ordinary delivery."""

    @pytest.mark.asyncio
    async def test_reaching_batch_size_triggers_flush(self) -> None:
        """The batch-size-th event schedules a flush of the whole queue."""
        collector = FakeCollector()
        batcher = _batcher(collector, batch_size=3)

        for index in range(3):
            batcher.enqueue(_event(index))
        await _settle()

        assert len(collector.sent) == 1, "Expected one delivered batch."
        payload = collector.sent[0]
        assert _indices(payload.events) == [0, 1, 2], "Expected recording order."
        assert payload.session_id == "eco_batch", "Expected the event session id."
        assert payload.client_context == {"app": "dashboard"}, "Expected context."
        assert payload.timestamp_ms == 42.0, "Expected the batch timestamp."
        assert batcher.stats().delivered == 3, "Expected three delivered events."

    @pytest.mark.asyncio
    async def test_below_batch_size_waits(self) -> None:
        """Fewer events than batch_size stay queued."""
        collector = FakeCollector()
        batcher = _batcher(collector, batch_size=3)

        batcher.enqueue(_event(0))
        await _settle()

        assert collector.attempts == [], "Expected no delivery yet."
        assert _indices(batcher.pending()) == [0], "Expected the event queued."

    @pytest.mark.asyncio
    async def test_empty_flush_is_a_no_op(self) -> None:
        """Flushing an empty queue sends nothing."""
        collector = FakeCollector()

        assert await _batcher(collector).flush() is True, "Expected success."
        assert collector.attempts == [], "Expected no request."

    @pytest.mark.asyncio
    async def test_failed_batch_requeues_ahead_of_newer_events(self) -> None:
        """Retries keep recording order ahead of events queued mid-flight."""
        gate = asyncio.Event()
        collector = FakeCollector(failures=1, send_gate=gate)
        batcher = _batcher(collector)
        batcher.enqueue(_event(0))
        batcher.enqueue(_event(1))

        flush_task = asyncio.create_task(batcher.flush())
        await _settle()
        batcher.enqueue(_event(2))
        gate.set()
        delivered = await flush_task

        assert delivered is False, "Expected the flush to report failure."
        assert _indices(batcher.pending()) == [0, 1, 2], (
            "Expected the failed batch ahead of the newer event."
        )

        assert await batcher.flush() is True, "Expected the retry to succeed."
        assert _indices(collector.sent[0].events) == [0, 1, 2], (
            "Expected the retry to preserve order."
        )
        assert batcher.stats().failed_flushes == 1, "Expected one failed flush."

    @pytest.mark.asyncio
    async def test_events_dropped_after_max_attempts(self) -> None:
        """Events exhausting their attempts are dropped and counted."""
        collector = FakeCollector(failures=10)
        batcher = _batcher(collector, max_attempts=2)
        batcher.enqueue(_event(0))

        await batcher.flush()
        assert _indices(batcher.pending()) == [0], "Expected a retry after 1 failure."
        await batcher.flush()

        stats = batcher.stats()
        assert stats.queued == 0, "Expected the event to leave the queue."
        assert stats.dropped == 1, "Expected one dropped event."
        assert stats.failed_flushes == 2, "Expected two failed flushes."

    @pytest.mark.asyncio
    async def test_unbounded_attempts_never_drop(self) -> None:
        """max_attempts=None retries indefinitely."""
        collector = FakeCollector(failures=20)
        batcher = _batcher(collector, max_attempts=None)
        batcher.enqueue(_event(0))

        for _ in range(10):
            await batcher.flush()

        assert batcher.stats().dropped == 0, "Expected nothing dropped."
        assert _indices(batcher.pending()) == [0], "Expected the event retained."

    @pytest.mark.asyncio
    async def test_cancelled_flush_restores_batch(self) -> None:
        """Cancelling an in-flight send puts the batch back in order."""
        collector = FakeCollector(send_gate=asyncio.Event())
        batcher = _batcher(collector)
        batcher.enqueue(_event(0))
        batcher.enqueue(_event(1))

        flush_task = asyncio.create_task(batcher.flush())
        await _settle()
        batcher.enqueue(_event(2))
        flush_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await flush_task

        assert _indices(batcher.pending()) == [0, 1, 2], (
            "Expected the cancelled batch restored ahead of newer events."
        )

    @pytest.mark.asyncio
    async def test_forced_flush_uses_best_effort_and_requeues_on_refusal(
        self,
    ) -> None:
        """flush(forced=True) goes through the best-effort path."""
        collector = FakeCollector(best_effort_result=False)
        batcher = _batcher(collector)
        batcher.enqueue(_event(0))

        assert await batcher.flush(forced=True) is False, "Expected a refusal."
        assert len(collector.best_effort) == 1, "Expected one best-effort send."
        assert _indices(batcher.pending()) == [0], "Expected the event re-queued."

    @pytest.mark.asyncio
    async def test_failed_flush_waits_for_timer_before_retrying(self) -> None:
        """A full queue does not trigger immediate retries after a failure."""
        collector = FakeCollector(failures=3)
        batcher = _batcher(collector, batch_size=2, max_attempts=3)

        for index in range(5):
            batcher.enqueue(_event(index))
            await _settle()

        stats = batcher.stats()
        assert len(collector.attempts) == 1, "Expected a single size-triggered send."
        assert stats.dropped == 0, "Expected no events dropped between ticks."
        assert stats.queued == 5, "Expected every event still queued."

    @pytest.mark.asyncio
    async def test_timer_retries_failed_batches(self) -> None:
        """Timer ticks retry a failed batch until it is delivered."""
        collector = FakeCollector(failures=3)
        batcher = _batcher(
            collector, batch_size=2, max_attempts=5, flush_interval_s=0.01
        )
        batcher.start()
        for index in range(5):
            batcher.enqueue(_event(index))

        await asyncio.sleep(0.2)
        await batcher.aclose()

        stats = batcher.stats()
        assert stats.dropped == 0, "Expected nothing dropped."
        assert stats.delivered == 5, "Expected every event delivered."
        assert _indices(collector.sent[0].events) == [0, 1, 2, 3, 4], (
            "Expected the retried batch in recording order."
        )

    @pytest.mark.asyncio
    async def test_forced_flush_does_not_block_the_event_loop(self) -> None:
        """The blocking best-effort send runs off the event loop."""
        collector = _SlowBestEffortCollector(delay_s=0.2)
        batcher = _batcher(collector)
        batcher.enqueue(_event(0))
        ticks = 0

        async def _ticker() -> None:
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        ticker = asyncio.create_task(_ticker())
        try:
            delivered = await batcher.flush(forced=True)
        finally:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker

        assert delivered is True, "Expected the forced flush to deliver."
        assert ticks > 0, "Expected the loop to keep running during the send."


class TestTimerAndShutdown:
    """Periodic flush and teardown."""

    @pytest.mark.asyncio
    async def test_timer_flushes_periodically(self) -> None:
        """The background timer delivers queued events."""
        collector = FakeCollector()
        batcher = _batcher(collector, flush_interval_s=0.01)
        batcher.start()
        batcher.enqueue(_event(0))

        await asyncio.sleep(0.05)
        await batcher.aclose()

        assert _indices(collector.sent[0].events) == [0], "Expected a timed flush."

    @pytest.mark.asyncio
    async def test_aclose_flushes_remaining_best_effort(self) -> None:
        """Closing delivers what is left through the best-effort path."""
        collector = FakeCollector()
        batcher = _batcher(collector)
        batcher.start()
        batcher.enqueue(_event(0))

        await batcher.aclose()

        assert _indices(collector.best_effort[0].events) == [0], (
            "Expected the queued event in the shutdown batch."
        )
        assert batcher.closed is True, "Expected the batcher to be closed."

    def test_shutdown_is_synchronous_and_idempotent(self) -> None:
        """Only the first shutdown sends; it works without an event loop."""
        collector = FakeCollector()
        batcher = _batcher(collector)
        batcher.enqueue(_event(0))
        batcher.enqueue(_event(1))

        batcher.shutdown()
        batcher.shutdown()

        assert len(collector.best_effort) == 1, "Expected a single shutdown send."
        assert batcher.stats().delivered == 2, "Expected both events delivered."
        assert batcher.pending() == (), "Expected an empty queue."

    def test_refused_shutdown_counts_dropped(self) -> None:
        """Events the collector refuses at shutdown are dropped."""
        collector = FakeCollector(best_effort_result=False)
        batcher = _batcher(collector)
        batcher.enqueue(_event(0))

        batcher.shutdown()

        assert batcher.stats().dropped == 1, "Expected the event counted dropped."
        assert batcher.pending() == (), "Expected nothing re-queued at shutdown."

    @pytest.mark.asyncio
    async def test_enqueue_after_shutdown_does_not_flush(self) -> None:
        """A closed batcher no longer schedules flushes."""
        collector = FakeCollector()
        batcher = _batcher(collector, batch_size=1)
        batcher.shutdown()

        batcher.enqueue(_event(0))
        await _settle()

        assert collector.attempts == [], "Expected no flush after shutdown."

    @pytest.mark.asyncio
    async def test_events_after_shutdown_are_counted_dropped(self) -> None:
        """A closed batcher neither queues nor sends late events."""
        collector = FakeCollector()
        batcher = _batcher(collector)
        batcher.shutdown()

        batcher.enqueue(_event(0))
        batcher.enqueue(_event(1))

        assert await batcher.flush() is True, "Expected nothing left to send."
        stats = batcher.stats()
        assert stats.queued == 0, "Expected late events not to be queued."
        assert stats.dropped == 2, "Expected late events counted as dropped."
        assert collector.attempts == [], "Expected no delivery after shutdown."

    def test_install_shutdown_hook_registers_once(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The atexit hook is registered a single time."""
        registered: list[object] = []
        monkeypatch.setattr(batcher_module.atexit, "register", registered.append)
        batcher = _batcher(FakeCollector())

        batcher.install_shutdown_hook()
        batcher.install_shutdown_hook()

        assert registered == [batcher.shutdown], "Expected one registration."


class TestBatcherSettings:
    """Policy validation."""

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"batch_size": 0}, "batch_size"),
            ({"flush_interval_s": 0}, "flush_interval_s"),
            ({"max_attempts": 0}, "max_attempts"),
        ],
    )
    def test_rejects_non_positive(self, kwargs: dict[str, float], field: str) -> None:
        """Non-positive limits are rejected."""
        with pytest.raises(ValueError, match=field):
            BatcherSettings(**kwargs)  # type: ignore[arg-type]
