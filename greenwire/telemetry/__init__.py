"""Carbon-cost telemetry: recording, budget classification and delivery.

Public API
----------
TelemetryRecorder
    Records operations, keeps session totals and forwards events.
CoefficientTable
    Per-kind cost coefficients and context multipliers.
EventBatcher
    Batched, retrying delivery with a best-effort shutdown flush.
HttpCollectorTransport
    httpx-backed collector transport.
DeliveryFailure
    Raised by collector transports on the ordinary delivery path.
classify_budget
    Classify cumulative cost against a budget in grams.

"""

from __future__ import annotations

from greenwire.telemetry.batcher import (
    BatcherSettings,
    BatcherStats,
    EventBatcher,
    EventSink,
)
from greenwire.telemetry.budget import classify_budget
from greenwire.telemetry.coefficients import CoefficientTable
from greenwire.telemetry.collector import CollectorTransport, HttpCollectorTransport
from greenwire.telemetry.errors import DeliveryFailure
from greenwire.telemetry.models import (
    BatchPayload,
    BudgetLevel,
    BudgetStatus,
    OperationKind,
    SessionExport,
    SessionMetrics,
    TelemetryContext,
    TelemetryEvent,
)
from greenwire.telemetry.recorder import TelemetryRecorder, new_session_id

__all__ = [
    "BatchPayload",
    "BatcherSettings",
    "BatcherStats",
    "BudgetLevel",
    "BudgetStatus",
    "CoefficientTable",
    "CollectorTransport",
    "DeliveryFailure",
    "EventBatcher",
    "EventSink",
    "HttpCollectorTransport",
    "OperationKind",
    "SessionExport",
    "SessionMetrics",
    "TelemetryContext",
    "TelemetryEvent",
    "TelemetryRecorder",
    "classify_budget",
    "new_session_id",
]
