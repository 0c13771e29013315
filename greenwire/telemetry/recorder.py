"""Convert tracked operations into cost-estimated telemetry events.

``TelemetryRecorder`` is the single entry point for telemetry: the request
pipeline records every call through it, and so can any other call site
(UI interaction counters, page lifecycle). Recording is pure bookkeeping:
it estimates cost, updates the running session totals and hands the event
to a sink. It never performs network I/O.
"""

from __future__ import annotations

import collections
import secrets
import string
import typing as typ

from greenwire.common.time import epoch_ms, monotonic_ms

from .budget import DEFAULT_BUDGET_GRAMS, classify_budget
from .coefficients import CoefficientTable
from .models import SessionExport, SessionMetrics, TelemetryContext, TelemetryEvent
from .observability import TelemetryEventLogger

if typ.TYPE_CHECKING:
    from greenwire.common.time import Clock

    from .batcher import EventSink
    from .models import AttributeValue, BudgetStatus

_SESSION_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SESSION_SUFFIX_LENGTH = 9
_DEFAULT_HISTORY_LIMIT = 1000


def new_session_id(clock: Clock = epoch_ms) -> str:
    """Return a session id of the form ``eco_<epoch ms>_<9 random chars>``."""
    suffix = "".join(
        secrets.choice(_SESSION_SUFFIX_ALPHABET) for _ in range(_SESSION_SUFFIX_LENGTH)
    )
    return f"eco_{int(clock())}_{suffix}"


class TelemetryRecorder:
    """Record operations, maintain session totals and forward events.

    Parameters
    ----------
    sink
        Receiver of recorded events, normally an ``EventBatcher``. ``None``
        keeps events local (metrics and history only).
    coefficients
        Cost model; the default table when omitted.
    enabled
        When false, :meth:`record` does nothing and returns ``None``.
    session_id
        Explicit session id; generated when omitted.
    history_limit
        Number of recent events retained for :meth:`export_data`. Totals
        cover every event regardless.
    wall_clock, monotonic_clock
        Millisecond clocks for event timestamps and session duration.

    """

    def __init__(  # noqa: PLR0913 - explicit collaborators, all keyword-only
        self,
        sink: EventSink | None = None,
        *,
        coefficients: CoefficientTable | None = None,
        enabled: bool = True,
        session_id: str | None = None,
        history_limit: int = _DEFAULT_HISTORY_LIMIT,
        wall_clock: Clock = epoch_ms,
        monotonic_clock: Clock = monotonic_ms,
        event_logger: TelemetryEventLogger | None = None,
    ) -> None:
        """Start a new session."""
        self._sink = sink
        self._coefficients = coefficients or CoefficientTable()
        self._enabled = enabled
        self._wall_clock = wall_clock
        self._monotonic_clock = monotonic_clock
        self._event_logger = event_logger or TelemetryEventLogger()
        self._history: collections.deque[TelemetryEvent] = collections.deque(
            maxlen=history_limit
        )
        self._start_session(session_id)

    def _start_session(self, session_id: str | None) -> None:
        self._session_id = session_id or new_session_id(self._wall_clock)
        self._started_at_ms = self._wall_clock()
        self._started_monotonic_ms = self._monotonic_clock()
        self._history.clear()
        self._total_events = 0
        self._total_cost = 0.0
        self._total_energy = 0.0
        self._session_duration_ms = 0.0

    @property
    def enabled(self) -> bool:
        """Whether recording is active."""
        return self._enabled

    @property
    def session_id(self) -> str:
        """Identifier of the current session."""
        return self._session_id

    @property
    def coefficients(self) -> CoefficientTable:
        """Cost model in use."""
        return self._coefficients

    def record(
        self,
        kind: str,
        context: TelemetryContext | None = None,
        *,
        cost_override: float | None = None,
    ) -> TelemetryEvent | None:
        """Record one operation of ``kind``.

        Parameters
        ----------
        kind
            Operation kind. Unknown kinds are valid and use the default
            coefficient.
        context
            Duration, size, complexity and descriptive attributes.
        cost_override
            Cost to use instead of the coefficient estimate.

        Returns
        -------
        TelemetryEvent | None
            The recorded event, or ``None`` when recording is disabled.

        """
        if not self._enabled:
            return None

        context = context or TelemetryContext()
        if cost_override is not None:
            cost = cost_override
        else:
            cost = self._coefficients.estimate_cost(kind, context)

        event = TelemetryEvent(
            session_id=self._session_id,
            kind=str(kind),
            timestamp_ms=self._wall_clock(),
            context=context,
            cost_estimate=cost,
            energy_estimate=self._coefficients.energy_for(cost),
        )
        self._apply(event)
        self._event_logger.log_event_recorded(event)
        if self._sink is not None:
            self._sink.enqueue(event)
        return event

    def track(
        self,
        kind: str,
        *,
        duration_ms: float | None = None,
        size_bytes: int | None = None,
        complexity: float | None = None,
        cost_override: float | None = None,
        **attributes: AttributeValue,
    ) -> TelemetryEvent | None:
        """Build a context from keyword arguments and :meth:`record` it."""
        context = TelemetryContext(
            duration_ms=duration_ms,
            size_bytes=size_bytes,
            complexity=complexity,
            attributes=attributes,
        )
        return self.record(kind, context, cost_override=cost_override)

    def _apply(self, event: TelemetryEvent) -> None:
        self._history.append(event)
        self._total_events += 1
        self._total_cost += event.cost_estimate
        self._total_energy += event.energy_estimate
        self._session_duration_ms = self._elapsed_ms()

    def _elapsed_ms(self) -> float:
        return self._monotonic_clock() - self._started_monotonic_ms

    def get_session_metrics(self) -> SessionMetrics:
        """Return the cumulative session totals."""
        return SessionMetrics(
            session_id=self._session_id,
            total_events=self._total_events,
            total_cost=self._total_cost,
            total_energy=self._total_energy,
            session_duration_ms=self._session_duration_ms,
        )

    def get_budget_status(self, budget: float = DEFAULT_BUDGET_GRAMS) -> BudgetStatus:
        """Classify the session's total cost against ``budget`` grams."""
        return classify_budget(self._total_cost, budget)

    def export_data(self, budget: float = DEFAULT_BUDGET_GRAMS) -> SessionExport:
        """Return the session snapshot with its retained event history."""
        return SessionExport(
            session_id=self._session_id,
            started_at_ms=self._started_at_ms,
            events=tuple(self._history),
            metrics=self.get_session_metrics(),
            budget=self.get_budget_status(budget),
        )

    def reset(self, session_id: str | None = None) -> None:
        """Clear totals and history and begin a new session.

        Events already handed to the sink are unaffected.
        """
        self._start_session(session_id)
