"""Telemetry delivery errors.

These never reach request-path callers; ``EventBatcher`` contains them.
"""

from __future__ import annotations


class DeliveryFailure(RuntimeError):
    """Raised by a collector transport when a batch was not accepted."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int) -> DeliveryFailure:
        """Return an error for a non-2xx collector response."""
        return cls(f"Collector HTTP {status_code}", status_code=status_code)

    @classmethod
    def timeout(cls) -> DeliveryFailure:
        """Return an error for a collector request timeout."""
        return cls("Collector request timed out")

    @classmethod
    def network_error(cls, detail: str) -> DeliveryFailure:
        """Return an error for a connection-level failure."""
        return cls(f"Collector network error: {detail}")
