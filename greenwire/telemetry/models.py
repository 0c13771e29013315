"""Telemetry value types and the collector wire format.

Wire types are ``msgspec`` structs renamed to camelCase so the encoded batch
matches what collectors expect::

    {"sessionId": "...", "events": [...], "timestampMs": ..., "clientContext": {...}}

"""

from __future__ import annotations

import dataclasses as dc
import enum

import msgspec

AttributeValue = str | int | float | bool | None


class OperationKind(enum.StrEnum):
    """Operation kinds with a known base coefficient.

    ``record`` also accepts arbitrary strings; unknown kinds fall back to the
    default coefficient.
    """

    API_REQUEST = "api_request"
    API_CACHE_HIT = "api_cache_hit"
    API_ERROR = "api_error"
    PAGE_LOAD = "page_load"
    PAGE_UNLOAD = "page_unload"
    ASSET_LOAD = "asset_load"
    BUTTON_CLICK = "button_click"
    FORM_SUBMIT = "form_submit"
    SCROLL = "scroll"
    TYPING = "typing"
    AI_CHAT = "ai_chat"
    AI_RESPONSE = "ai_response"
    DATABASE_READ = "database_read"
    DATABASE_WRITE = "database_write"
    FILE_UPLOAD = "file_upload"
    DOM_UPDATE = "dom_update"
    ANIMATION = "animation"
    CHART_RENDER = "chart_render"


class TelemetryContext(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """Contextual data for one tracked operation.

    Attributes
    ----------
    duration_ms
        Operation duration; scales cost per second.
    size_bytes
        Payload size; scales cost per kilobyte.
    complexity
        Caller-supplied weight applied as a direct factor.
    attributes
        Free-form descriptive fields (URL, method, status, error message).
        They never affect the estimate.

    """

    duration_ms: float | None = None
    size_bytes: int | None = None
    complexity: float | None = None
    attributes: dict[str, AttributeValue] = msgspec.field(default_factory=dict)


class TelemetryEvent(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """One recorded operation with its cost and energy estimates."""

    session_id: str
    kind: str
    timestamp_ms: float
    context: TelemetryContext
    cost_estimate: float
    energy_estimate: float


class BatchPayload(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """A single delivery unit posted to the collector."""

    session_id: str
    events: list[TelemetryEvent]
    timestamp_ms: float
    client_context: dict[str, str] = msgspec.field(default_factory=dict)


def encode_batch(payload: BatchPayload) -> bytes:
    """Encode ``payload`` as the collector's JSON body."""
    return msgspec.json.encode(payload)


@dc.dataclass(frozen=True, slots=True)
class SessionMetrics:
    """Cumulative totals for a telemetry session.

    ``total_cost`` always equals the sum of every recorded event's
    ``cost_estimate`` in recording order.
    """

    session_id: str
    total_events: int
    total_cost: float
    total_energy: float
    session_duration_ms: float

    @property
    def average_cost_per_event(self) -> float:
        """Mean cost per event, zero for an empty session."""
        if self.total_events == 0:
            return 0.0
        return self.total_cost / self.total_events

    @property
    def cost_per_minute(self) -> float:
        """Cost rate over the session so far, zero before time has passed."""
        if self.session_duration_ms <= 0:
            return 0.0
        return self.total_cost / self.session_duration_ms * 60_000


class BudgetLevel(enum.StrEnum):
    """Budget classification bands."""

    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


@dc.dataclass(frozen=True, slots=True)
class BudgetStatus:
    """Cumulative cost measured against a fixed allowance."""

    budget: float
    used: float
    remaining: float
    percentage: float
    status: BudgetLevel


@dc.dataclass(frozen=True, slots=True)
class SessionExport:
    """Snapshot of a session for diagnostics."""

    session_id: str
    started_at_ms: float
    events: tuple[TelemetryEvent, ...]
    metrics: SessionMetrics
    budget: BudgetStatus
