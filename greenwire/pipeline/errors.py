"""Classified errors raised by ``RequestPipeline.execute``."""

from __future__ import annotations

import enum

_HTTP_UNAUTHORIZED = 401


class RequestErrorKind(enum.StrEnum):
    """Classification attached to every request error."""

    TIMEOUT = "timeout"
    TRANSPORT_FAILURE = "transport_failure"
    HTTP_STATUS = "http_status"
    INTERCEPTOR_REJECTION = "interceptor_rejection"
    AUTH_FAILURE = "auth_failure"


class RequestError(Exception):
    """Base class for failures surfaced to pipeline callers.

    Attributes
    ----------
    status_code
        HTTP status code when the failure came from a response.
    kind
        Classification of the failure.

    """

    kind: RequestErrorKind = RequestErrorKind.TRANSPORT_FAILURE

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a human-readable message and optional status."""
        self.status_code = status_code
        super().__init__(message)


class RequestTimeoutError(RequestError):
    """Raised when the transport call exceeds its deadline."""

    kind = RequestErrorKind.TIMEOUT

    @classmethod
    def after(cls, timeout_s: float) -> RequestTimeoutError:
        """Return an error for a call cancelled after ``timeout_s``."""
        return cls(f"Request timed out after {timeout_s:g}s")


class TransportFailure(RequestError):
    """Raised for connection-level failures (DNS, refused, TLS, reset)."""

    kind = RequestErrorKind.TRANSPORT_FAILURE

    @classmethod
    def network_error(cls, detail: str) -> TransportFailure:
        """Return an error describing a network failure."""
        return cls(f"Network error: {detail}")

    @classmethod
    def unencodable_body(cls, detail: str) -> TransportFailure:
        """Return an error for a request body that cannot be serialised."""
        return cls(f"Request body could not be encoded: {detail}")

    @classmethod
    def unexpected(cls, exc: Exception) -> TransportFailure:
        """Return an error wrapping an unclassified transport exception."""
        return cls(f"Transport raised {type(exc).__name__}: {exc}")


class HttpStatusError(RequestError):
    """Raised for non-success HTTP responses."""

    kind = RequestErrorKind.HTTP_STATUS

    @classmethod
    def from_status(cls, status_code: int, reason: str = "") -> HttpStatusError:
        """Return the error for ``status_code``.

        401 responses produce :class:`AuthFailure`.
        """
        message = f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}"
        if status_code == _HTTP_UNAUTHORIZED:
            return AuthFailure(message, status_code=status_code)
        return cls(message, status_code=status_code)


class AuthFailure(HttpStatusError):
    """HTTP 401; additionally triggers the pipeline's auth-failure hook."""

    kind = RequestErrorKind.AUTH_FAILURE


class InterceptorRejection(RequestError):
    """Raised by a response interceptor to reject a successful response."""

    kind = RequestErrorKind.INTERCEPTOR_REJECTION

    @classmethod
    def because(
        cls, reason: str, *, status_code: int | None = None
    ) -> InterceptorRejection:
        """Return a rejection carrying ``reason``."""
        return cls(f"Response rejected: {reason}", status_code=status_code)


class ResponseDecodeError(HttpStatusError):
    """Raised when a success response body is not valid JSON."""

    _PREVIEW_LIMIT = 100

    @classmethod
    def invalid_json(cls, status_code: int, content: bytes) -> ResponseDecodeError:
        """Return an error with a truncated preview of ``content``."""
        text = content.decode("utf-8", errors="replace")
        if len(text) > cls._PREVIEW_LIMIT:
            text = text[: cls._PREVIEW_LIMIT] + "..."
        return cls(
            f"Failed to decode JSON response body: {text}",
            status_code=status_code,
        )


__all__ = [
    "AuthFailure",
    "HttpStatusError",
    "InterceptorRejection",
    "RequestError",
    "RequestErrorKind",
    "RequestTimeoutError",
    "ResponseDecodeError",
    "TransportFailure",
]
