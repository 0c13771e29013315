"""Collector transports for telemetry batches.

Two delivery guarantees are modelled as two methods:

- ``send`` is the ordinary asynchronous path. It raises
  :class:`DeliveryFailure` so the batcher can re-queue the batch.
- ``send_best_effort`` is the teardown path. It never raises and reports
  only whether the collector acknowledged the batch. The HTTP
  implementation performs a short blocking POST because no further event
  loop turns are guaranteed at shutdown.
"""

from __future__ import annotations

import typing as typ

import httpx

from greenwire.logging import get_logger, log_warning

from .errors import DeliveryFailure
from .models import encode_batch

if typ.TYPE_CHECKING:
    from .models import BatchPayload

logger = get_logger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json"}


class CollectorTransport(typ.Protocol):
    """Delivers encoded batches to a telemetry collector."""

    async def send(self, payload: BatchPayload) -> None:
        """Deliver ``payload``, raising ``DeliveryFailure`` on any failure."""
        ...

    def send_best_effort(self, payload: BatchPayload) -> bool:
        """Attempt delivery without raising; return whether it was accepted."""
        ...


class HttpCollectorTransport:
    """POSTs JSON batches to an HTTP collector endpoint.

    Parameters
    ----------
    endpoint
        Absolute collector URL.
    http_client
        Optional async client for the ordinary path; created and owned when
        omitted.
    timeout_s
        Request timeout for an owned async client.
    best_effort_client
        Optional sync client for the shutdown path; a short-lived client is
        created per call when omitted.
    best_effort_timeout_s
        Timeout of the shutdown POST.

    """

    def __init__(
        self,
        endpoint: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 10.0,
        best_effort_client: httpx.Client | None = None,
        best_effort_timeout_s: float = 2.0,
    ) -> None:
        """Initialise the transport."""
        self._endpoint = endpoint
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._best_effort_client = best_effort_client
        self._best_effort_timeout_s = best_effort_timeout_s

    @property
    def endpoint(self) -> str:
        """Collector URL."""
        return self._endpoint

    async def aclose(self) -> None:
        """Close the async client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def send(self, payload: BatchPayload) -> None:
        """POST ``payload`` to the collector.

        Raises
        ------
        DeliveryFailure
            On timeout, connection failure or a non-2xx response.

        """
        try:
            response = await self._client.post(
                self._endpoint,
                content=encode_batch(payload),
                headers=_JSON_HEADERS,
            )
        except httpx.TimeoutException as exc:
            raise DeliveryFailure.timeout() from exc
        except httpx.RequestError as exc:
            raise DeliveryFailure.network_error(str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise DeliveryFailure.http_error(response.status_code)

    def send_best_effort(self, payload: BatchPayload) -> bool:
        """POST ``payload`` synchronously, swallowing delivery errors."""
        body = encode_batch(payload)
        try:
            if self._best_effort_client is not None:
                response = self._best_effort_client.post(
                    self._endpoint, content=body, headers=_JSON_HEADERS
                )
            else:
                with httpx.Client(timeout=self._best_effort_timeout_s) as client:
                    response = client.post(
                        self._endpoint, content=body, headers=_JSON_HEADERS
                    )
        except httpx.HTTPError as exc:
            log_warning(
                logger,
                "Best-effort telemetry delivery to %s failed: %s",
                self._endpoint,
                exc,
            )
            return False
        return response.is_success
