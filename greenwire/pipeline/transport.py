"""Request transports: the network edge of the pipeline."""

from __future__ import annotations

import typing as typ

import httpx

from .errors import RequestTimeoutError, TransportFailure
from .models import TransportResponse, encode_body

if typ.TYPE_CHECKING:
    from .models import RequestDescriptor


class RequestTransport(typ.Protocol):
    """Performs one HTTP exchange for the pipeline.

    Implementations raise :class:`TransportFailure` or
    :class:`RequestTimeoutError` for exchanges that produced no response, and
    return non-2xx responses rather than raising for them. They must tolerate
    cancellation, which the pipeline uses to enforce its deadline.
    """

    async def send(self, descriptor: RequestDescriptor, *, url: str) -> TransportResponse:
        """Send ``descriptor`` to the absolute ``url``."""
        ...


class HttpxRequestTransport:
    """``RequestTransport`` backed by ``httpx.AsyncClient``.

    Parameters
    ----------
    http_client
        Optional client, typically with a mock transport in tests. When
        omitted the instance creates and owns its own client.

    """

    def __init__(self, *, http_client: httpx.AsyncClient | None = None) -> None:
        """Initialise the transport."""
        self._owns_client = http_client is None
        # The pipeline enforces deadlines itself.
        self._client = http_client or httpx.AsyncClient(timeout=None)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def send(self, descriptor: RequestDescriptor, *, url: str) -> TransportResponse:
        """Issue the request and wrap the response.

        Raises
        ------
        RequestTimeoutError
            If httpx reports a timeout.
        TransportFailure
            If the connection fails.

        """
        try:
            response = await self._client.request(
                descriptor.method,
                url,
                headers=dict(descriptor.headers),
                content=encode_body(descriptor.body),
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"Request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportFailure.network_error(str(exc) or type(exc).__name__) from exc

        return TransportResponse(
            status_code=response.status_code,
            content=response.content,
            reason=response.reason_phrase,
            headers=dict(response.headers),
        )
