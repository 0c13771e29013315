"""Structured log events for telemetry recording and delivery.

Usage
-----
>>> event_logger = TelemetryEventLogger()
>>> event_logger.log_batch_delivered(session_id="eco_1_abc", event_count=10)

"""

from __future__ import annotations

import enum
import typing as typ

from greenwire.logging import get_logger, log_debug, log_info, log_warning

if typ.TYPE_CHECKING:
    from .models import TelemetryEvent

logger = get_logger(__name__)


class TelemetryEventType(enum.StrEnum):
    """Structured log event types for the telemetry subsystem."""

    EVENT_RECORDED = "telemetry.event.recorded"
    BATCH_DELIVERED = "telemetry.batch.delivered"
    BATCH_FAILED = "telemetry.batch.failed"
    EVENTS_DROPPED = "telemetry.events.dropped"
    SHUTDOWN_FLUSHED = "telemetry.shutdown.flushed"


class TelemetryEventLogger:
    """Emit telemetry lifecycle events via femtologging."""

    def log_event_recorded(self, event: TelemetryEvent) -> None:
        """Trace one recorded event at DEBUG."""
        log_debug(
            logger,
            "[%s] kind=%s cost_g=%.4f energy_j=%.4f",
            TelemetryEventType.EVENT_RECORDED,
            event.kind,
            event.cost_estimate,
            event.energy_estimate,
        )

    def log_batch_delivered(self, *, session_id: str, event_count: int) -> None:
        """Log a batch accepted by the collector."""
        log_info(
            logger,
            "[%s] session_id=%s event_count=%d",
            TelemetryEventType.BATCH_DELIVERED,
            session_id,
            event_count,
        )

    def log_batch_failed(
        self,
        *,
        session_id: str,
        event_count: int,
        requeued: int,
        error: BaseException,
    ) -> None:
        """Log a failed delivery and how many events went back on the queue."""
        log_warning(
            logger,
            "[%s] session_id=%s event_count=%d requeued=%d error=%s",
            TelemetryEventType.BATCH_FAILED,
            session_id,
            event_count,
            requeued,
            error,
        )

    def log_events_dropped(
        self, *, session_id: str, dropped: int, max_attempts: int
    ) -> None:
        """Log events discarded after exhausting their delivery attempts."""
        log_warning(
            logger,
            "[%s] session_id=%s dropped=%d max_attempts=%d",
            TelemetryEventType.EVENTS_DROPPED,
            session_id,
            dropped,
            max_attempts,
        )

    def log_event_rejected(self, event: TelemetryEvent) -> None:
        """Log an event discarded because the batcher is already closed."""
        log_warning(
            logger,
            "[%s] session_id=%s kind=%s reason=closed",
            TelemetryEventType.EVENTS_DROPPED,
            event.session_id,
            event.kind,
        )

    def log_shutdown_flushed(
        self, *, session_id: str, event_count: int, delivered: bool
    ) -> None:
        """Log the outcome of the best-effort shutdown flush."""
        log_info(
            logger,
            "[%s] session_id=%s event_count=%d delivered=%s",
            TelemetryEventType.SHUTDOWN_FLUSHED,
            session_id,
            event_count,
            delivered,
        )
