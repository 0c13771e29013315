"""Structured log events for request pipeline execution.

Every event is a single pre-formatted line tagged with a
``PipelineEventType`` so log aggregators can filter on it.
"""

from __future__ import annotations

import enum
import typing as typ

from greenwire.logging import get_logger, log_debug, log_info, log_warning

from .errors import (
    HttpStatusError,
    InterceptorRejection,
    RequestTimeoutError,
    TransportFailure,
)

if typ.TYPE_CHECKING:
    from .models import RequestDescriptor

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500


class PipelineEventType(enum.StrEnum):
    """Structured log event types for pipeline calls."""

    REQUEST_COMPLETED = "request.completed"
    REQUEST_FAILED = "request.failed"
    CACHE_HIT = "request.cache_hit"
    INTERCEPTOR_FAILED = "interceptor.failed"
    AUTH_FAILED = "auth.failed"


class ErrorCategory(enum.StrEnum):
    """Coarse categories used to route request failures."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    INTERCEPTOR = "interceptor"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (RequestTimeoutError, ErrorCategory.TIMEOUT),
    (TransportFailure, ErrorCategory.NETWORK),
    (InterceptorRejection, ErrorCategory.INTERCEPTOR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize a request failure.

    HTTP status errors are transient for 5xx and client errors otherwise.
    """
    if isinstance(exc, HttpStatusError):
        if (
            exc.status_code is not None
            and exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD
        ):
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class PipelineEventLogger:
    """Emit structured pipeline events via femtologging."""

    def log_request_completed(
        self,
        descriptor: RequestDescriptor,
        *,
        status_code: int,
        duration_ms: float,
    ) -> None:
        """Log a successful transport round trip."""
        log_info(
            logger,
            "[%s] method=%s url=%s status=%d duration_ms=%.1f",
            PipelineEventType.REQUEST_COMPLETED,
            descriptor.method,
            descriptor.url,
            status_code,
            duration_ms,
        )

    def log_request_failed(
        self,
        descriptor: RequestDescriptor,
        error: BaseException,
        *,
        duration_ms: float,
    ) -> None:
        """Log a failed call with its category and status code."""
        log_warning(
            logger,
            "[%s] method=%s url=%s category=%s status=%s duration_ms=%.1f error=%s",
            PipelineEventType.REQUEST_FAILED,
            descriptor.method,
            descriptor.url,
            categorize_error(error),
            getattr(error, "status_code", None),
            duration_ms,
            error,
        )

    def log_cache_hit(self, descriptor: RequestDescriptor) -> None:
        """Log a response served from cache."""
        log_debug(
            logger,
            "[%s] method=%s url=%s",
            PipelineEventType.CACHE_HIT,
            descriptor.method,
            descriptor.url,
        )

    def log_interceptor_failed(self, stage: str, error: BaseException) -> None:
        """Log an interceptor exception that was absorbed."""
        log_warning(
            logger,
            "[%s] stage=%s error_type=%s error=%s",
            PipelineEventType.INTERCEPTOR_FAILED,
            stage,
            type(error).__name__,
            error,
            exc_info=error,
        )

    def log_auth_failure(self, descriptor: RequestDescriptor) -> None:
        """Log that the auth-failure hook is being invoked."""
        log_warning(
            logger,
            "[%s] method=%s url=%s",
            PipelineEventType.AUTH_FAILED,
            descriptor.method,
            descriptor.url,
        )
