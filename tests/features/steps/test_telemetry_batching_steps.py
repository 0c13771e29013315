"""Behavioural coverage for telemetry batching and shutdown delivery."""

from __future__ import annotations

import asyncio
import typing as typ

from pytest_bdd import given, parsers, scenario, then, when

from greenwire.telemetry.batcher import BatcherSettings, EventBatcher
from greenwire.telemetry.models import OperationKind
from greenwire.telemetry.recorder import TelemetryRecorder
from tests.unit.pipeline_test_helpers import FakeCollector


class TelemetryBatchingContext(typ.TypedDict, total=False):
    """Mutable context shared between BDD steps."""

    collector: FakeCollector
    batcher: EventBatcher
    recorder: TelemetryRecorder
    next_index: int


@scenario(
    "../telemetry_batching.feature",
    "A full batch is delivered to the collector",
)
def test_full_batch_delivered() -> None:
    """Wrapper for the batch-size flush scenario."""


@scenario(
    "../telemetry_batching.feature",
    "A failed batch is retried ahead of newer events",
)
def test_failed_batch_retried_in_order() -> None:
    """Wrapper for the retry ordering scenario."""


@scenario(
    "../telemetry_batching.feature",
    "Queued events are flushed best-effort at shutdown",
)
def test_shutdown_flush() -> None:
    """Wrapper for the shutdown delivery scenario."""


@scenario(
    "../telemetry_batching.feature",
    "Session cost crosses into the warning band",
)
def test_budget_warning() -> None:
    """Wrapper for the budget classification scenario."""


@given(
    parsers.parse("a telemetry batcher with batch size {size:d}"),
    target_fixture="telemetry_context",
)
def given_batcher(size: int) -> TelemetryBatchingContext:
    """Build a recorder feeding a batcher over a fake collector."""
    collector = FakeCollector()
    batcher = EventBatcher(collector, settings=BatcherSettings(batch_size=size))
    recorder = TelemetryRecorder(batcher, session_id="eco_bdd_session")
    return {
        "collector": collector,
        "batcher": batcher,
        "recorder": recorder,
        "next_index": 0,
    }


@given("the collector rejects the next delivery")
def given_collector_rejects(telemetry_context: TelemetryBatchingContext) -> None:
    """Script one failed delivery."""
    telemetry_context["collector"].failures = 1


def _record_clicks(context: TelemetryBatchingContext, count: int) -> None:
    async def _record() -> None:
        for _ in range(count):
            context["recorder"].track(
                OperationKind.BUTTON_CLICK, index=context["next_index"]
            )
            context["next_index"] += 1
        for _ in range(5):
            await asyncio.sleep(0)

    asyncio.run(_record())


@when(parsers.parse("{count:d} button clicks are recorded"))
def when_clicks_recorded(
    telemetry_context: TelemetryBatchingContext, count: int
) -> None:
    """Record several clicks inside an event loop."""
    _record_clicks(telemetry_context, count)


@when("1 button click is recorded")
def when_one_click_recorded(telemetry_context: TelemetryBatchingContext) -> None:
    """Record a single click."""
    _record_clicks(telemetry_context, 1)


@when("the batcher flushes")
def when_batcher_flushes(telemetry_context: TelemetryBatchingContext) -> None:
    """Run one ordinary flush."""
    asyncio.run(telemetry_context["batcher"].flush())


@when("the batcher shuts down twice")
def when_batcher_shuts_down(telemetry_context: TelemetryBatchingContext) -> None:
    """Call shutdown twice without an event loop."""
    telemetry_context["batcher"].shutdown()
    telemetry_context["batcher"].shutdown()


@when("an AI chat and a page load are recorded")
def when_costly_operations_recorded(
    telemetry_context: TelemetryBatchingContext,
) -> None:
    """Record 5 g and 2 g operations."""
    telemetry_context["recorder"].record(OperationKind.AI_CHAT)
    telemetry_context["recorder"].record(OperationKind.PAGE_LOAD)


@when(parsers.parse("an operation costing {cost:f} grams is recorded"))
def when_override_recorded(
    telemetry_context: TelemetryBatchingContext, cost: float
) -> None:
    """Record an operation with an explicit cost."""
    telemetry_context["recorder"].record("custom", cost_override=cost)


@then(parsers.parse("the collector receives {batches:d} batch of {events:d} events"))
def then_collector_receives(
    telemetry_context: TelemetryBatchingContext, batches: int, events: int
) -> None:
    """Check delivered batch count and size."""
    sent = telemetry_context["collector"].sent
    assert len(sent) == batches, f"Expected {batches} delivered batch(es)."
    assert len(sent[0].events) == events, f"Expected {events} events."


@then("the delivered events are in recording order")
def then_events_in_order(telemetry_context: TelemetryBatchingContext) -> None:
    """Check retry ordering."""
    events = telemetry_context["collector"].sent[0].events
    indices = [event.context.attributes["index"] for event in events]
    assert indices == sorted(indices), "Expected recording order to be preserved."


@then(
    parsers.parse(
        "the collector receives {batches:d} best-effort batch of {events:d} events"
    )
)
def then_best_effort_batches(
    telemetry_context: TelemetryBatchingContext, batches: int, events: int
) -> None:
    """Check the shutdown delivery."""
    sent = telemetry_context["collector"].best_effort
    assert len(sent) == batches, f"Expected {batches} best-effort batch(es)."
    assert len(sent[0].events) == events, f"Expected {events} events."


@then(parsers.parse('the budget status is "{level}"'))
def then_budget_status(telemetry_context: TelemetryBatchingContext, level: str) -> None:
    """Check the budget band."""
    status = telemetry_context["recorder"].get_budget_status()
    assert status.status == level, f"Expected the {level} budget band."
