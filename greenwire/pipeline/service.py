"""The request pipeline: interceptors, cache, cancellable transport, telemetry.

Each ``execute`` call runs its stages strictly in this order:

1. request interceptors fold the descriptor (the bearer-token interceptor
   is always first);
2. cacheable GETs are looked up by the fingerprint of the *final*
   descriptor, so interceptors that alter the URL or body change identity;
3. the transport call runs under the configured deadline and is cancelled
   when it expires;
4. response interceptors fold the decoded body;
5. the value is cached for cacheable GETs;
6. exactly one telemetry event is recorded.

Failures are classified, the auth-failure hook fires for 401s, and the
error interceptors run; unless one of them recovers, the classified error
propagates. Concurrent calls for the same key are not de-duplicated: both
reach the transport and the last writer wins in the cache.

Usage
-----
>>> pipeline = RequestPipeline(
...     PipelineDependencies(
...         transport=HttpxRequestTransport(),
...         cache=ResponseCache(ttl_ms=300_000),
...         recorder=TelemetryRecorder(batcher),
...     ),
...     config=PipelineConfig(base_url="https://api.example.test"),
... )
>>> profile = await pipeline.get("/users/me")

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import typing as typ

import msgspec

from greenwire.common.time import monotonic_ms
from greenwire.config import PipelineConfig
from greenwire.logging import get_logger, log_exception
from greenwire.telemetry.models import OperationKind, TelemetryContext

from .errors import (
    AuthFailure,
    HttpStatusError,
    RequestError,
    RequestTimeoutError,
    ResponseDecodeError,
    TransportFailure,
)
from .interceptors import InterceptorChain
from .models import (
    HttpMethod,
    Recovered,
    RequestDescriptor,
    RequestOptions,
    cache_key,
)
from .observability import PipelineEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from greenwire.common.time import Clock
    from greenwire.telemetry.recorder import TelemetryRecorder

    from .cache import CacheStats, ResponseCache
    from .interceptors import ErrorInterceptor, RequestInterceptor, SuccessInterceptor
    from .models import TransportResponse
    from .transport import RequestTransport

logger = get_logger(__name__)

_DEFAULT_HEADERS = {"Content-Type": "application/json"}
_CACHED_STATUS = 200


class CredentialProvider(typ.Protocol):
    """Access to the current credential and the auth-failure side channel."""

    def get_token(self) -> str | None:
        """Return the current bearer token, if any."""
        ...

    def on_auth_failure(self) -> None:
        """Clear stored credentials and redirect to sign-in."""
        ...


def bearer_token_interceptor(credentials: CredentialProvider) -> RequestInterceptor:
    """Return a request interceptor adding ``Authorization: Bearer <token>``."""

    def _attach_token(descriptor: RequestDescriptor) -> RequestDescriptor:
        token = credentials.get_token()
        if not token:
            return descriptor
        return descriptor.with_header("Authorization", f"Bearer {token}")

    return _attach_token


@dc.dataclass(frozen=True, slots=True)
class PipelineDependencies:
    """Collaborators of a ``RequestPipeline``.

    Attributes
    ----------
    transport
        Network edge performing the HTTP exchange.
    cache
        Response cache for GETs.
    recorder
        Telemetry entry point receiving one event per call.
    credentials
        Optional credential accessor and auth-failure hook.

    """

    transport: RequestTransport
    cache: ResponseCache
    recorder: TelemetryRecorder
    credentials: CredentialProvider | None = None


@dc.dataclass(frozen=True, slots=True)
class _Exchange:
    value: object
    status_code: int


class RequestPipeline:
    """Execute requests through interceptors, cache and transport."""

    def __init__(
        self,
        dependencies: PipelineDependencies,
        *,
        config: PipelineConfig | None = None,
        event_logger: PipelineEventLogger | None = None,
        clock: Clock = monotonic_ms,
    ) -> None:
        """Wire the pipeline and install the bearer-token interceptor.

        Parameters
        ----------
        dependencies
            Transport, cache, recorder and optional credentials.
        config
            Base URL and deadline; defaults apply when omitted.
        event_logger
            Structured logger shared with the interceptor chain.
        clock
            Millisecond clock used to measure call duration.

        """
        self._transport = dependencies.transport
        self._cache = dependencies.cache
        self._recorder = dependencies.recorder
        self._credentials = dependencies.credentials
        self._config = config or PipelineConfig()
        self._event_logger = event_logger or PipelineEventLogger()
        self._clock = clock
        self._interceptors = InterceptorChain(self._event_logger)
        if self._credentials is not None:
            self._interceptors.add_request_interceptor(
                bearer_token_interceptor(self._credentials)
            )

    @property
    def config(self) -> PipelineConfig:
        """Configuration in use."""
        return self._config

    @property
    def interceptors(self) -> InterceptorChain:
        """The interceptor chain wrapped around every call."""
        return self._interceptors

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> None:
        """Append a request interceptor."""
        self._interceptors.add_request_interceptor(interceptor)

    def add_response_interceptor(
        self,
        on_success: SuccessInterceptor | None = None,
        on_error: ErrorInterceptor | None = None,
    ) -> None:
        """Append a response interceptor pair."""
        self._interceptors.add_response_interceptor(on_success, on_error)

    def clear_cache(self) -> None:
        """Drop every cached response."""
        self._cache.clear()

    def cache_stats(self) -> CacheStats:
        """Return cache occupancy."""
        return self._cache.stats()

    async def execute(self, descriptor: RequestDescriptor) -> object:
        """Run ``descriptor`` through the pipeline and return the response value.

        Raises
        ------
        RequestError
            The classified failure, after error interceptors declined to
            recover it.
        Exception
            Whatever a request interceptor or error interceptor raised.

        """
        started_ms = self._clock()
        prepared = self._with_default_headers(descriptor)
        try:
            final = await self._interceptors.apply_request(prepared)
        except Exception as exc:
            self._record_failure(prepared, exc, started_ms)
            raise

        url = self._config.resolve_url(final.url)
        try:
            key = self._cache_key(final, url)
        except RequestError as error:
            return await self._handle_failure(final, error, started_ms)

        if final.is_cacheable:
            cached = self._cache.get(key)
            if cached is not None:
                self._record_cache_hit(final, url, started_ms)
                return cached

        try:
            exchange = await self._exchange(final, url)
        except RequestError as error:
            return await self._handle_failure(final, error, started_ms)

        if final.is_cacheable and exchange.value is not None:
            self._cache.set(key, exchange.value)

        duration_ms = self._clock() - started_ms
        self._event_logger.log_request_completed(
            final, status_code=exchange.status_code, duration_ms=duration_ms
        )
        self._recorder.record(
            OperationKind.API_REQUEST,
            TelemetryContext(
                duration_ms=duration_ms,
                attributes={
                    "url": url,
                    "method": final.method,
                    "status": exchange.status_code,
                },
            ),
        )
        return exchange.value

    def _with_default_headers(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        return descriptor.replace(headers={**_DEFAULT_HEADERS, **descriptor.headers})

    def _timeout_s(self, descriptor: RequestDescriptor) -> float:
        timeout_ms = descriptor.options.timeout_ms
        if timeout_ms is None:
            timeout_ms = self._config.timeout_ms
        return timeout_ms / 1000.0

    @staticmethod
    def _cache_key(descriptor: RequestDescriptor, url: str) -> str:
        try:
            return cache_key(descriptor, absolute_url=url)
        except (TypeError, msgspec.EncodeError) as exc:
            raise TransportFailure.unencodable_body(str(exc)) from exc

    def _record_cache_hit(
        self, descriptor: RequestDescriptor, url: str, started_ms: float
    ) -> None:
        self._event_logger.log_cache_hit(descriptor)
        self._recorder.record(
            OperationKind.API_CACHE_HIT,
            TelemetryContext(
                attributes={
                    "url": url,
                    "duration_ms": self._clock() - started_ms,
                    "status": _CACHED_STATUS,
                }
            ),
        )

    async def _exchange(self, descriptor: RequestDescriptor, url: str) -> _Exchange:
        timeout_s = self._timeout_s(descriptor)
        try:
            async with asyncio.timeout(timeout_s):
                response = await self._transport.send(descriptor, url=url)
        except TimeoutError as exc:
            raise RequestTimeoutError.after(timeout_s) from exc
        except RequestError:
            raise
        except Exception as exc:
            raise TransportFailure.unexpected(exc) from exc

        if not response.ok:
            raise HttpStatusError.from_status(response.status_code, response.reason)

        value = await self._interceptors.apply_response(self._decode(response))
        return _Exchange(value=value, status_code=response.status_code)

    @staticmethod
    def _decode(response: TransportResponse) -> object:
        if not response.content.strip():
            return None
        try:
            return msgspec.json.decode(response.content)
        except msgspec.DecodeError as exc:
            raise ResponseDecodeError.invalid_json(
                response.status_code, response.content
            ) from exc

    async def _handle_failure(
        self,
        descriptor: RequestDescriptor,
        error: RequestError,
        started_ms: float,
    ) -> object:
        if isinstance(error, AuthFailure):
            self._event_logger.log_auth_failure(descriptor)
            self._notify_auth_failure()

        try:
            outcome = await self._interceptors.apply_response(error, is_error=True)
        except Exception as raised:
            self._record_failure(descriptor, raised, started_ms)
            raise

        if isinstance(outcome, Recovered):
            self._record_failure(descriptor, error, started_ms, recovered=True)
            return outcome.value

        self._record_failure(descriptor, error, started_ms)
        if outcome is error:
            raise error
        raise typ.cast("RequestError", outcome) from error

    def _notify_auth_failure(self) -> None:
        if self._credentials is None:
            return
        try:
            self._credentials.on_auth_failure()
        except Exception as exc:  # noqa: BLE001 - hook failure must not mask the 401
            log_exception(logger, "Auth-failure hook raised", exc)

    def _record_failure(
        self,
        descriptor: RequestDescriptor,
        error: BaseException,
        started_ms: float,
        *,
        recovered: bool = False,
    ) -> None:
        duration_ms = self._clock() - started_ms
        self._event_logger.log_request_failed(
            descriptor, error, duration_ms=duration_ms
        )
        self._recorder.record(
            OperationKind.API_ERROR,
            TelemetryContext(
                duration_ms=duration_ms,
                attributes={
                    "url": self._config.resolve_url(descriptor.url),
                    "method": descriptor.method,
                    "status": getattr(error, "status_code", None),
                    "error": str(error),
                    "recovered": recovered,
                },
            ),
        )

    async def get(
        self,
        url: str,
        *,
        headers: cabc.Mapping[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> object:
        """Execute a GET request."""
        return await self._verb(HttpMethod.GET, url, None, headers, options)

    async def post(
        self,
        url: str,
        data: object | None = None,
        *,
        headers: cabc.Mapping[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> object:
        """Execute a POST request with a JSON body."""
        return await self._verb(HttpMethod.POST, url, data, headers, options)

    async def put(
        self,
        url: str,
        data: object | None = None,
        *,
        headers: cabc.Mapping[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> object:
        """Execute a PUT request with a JSON body."""
        return await self._verb(HttpMethod.PUT, url, data, headers, options)

    async def delete(
        self,
        url: str,
        *,
        headers: cabc.Mapping[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> object:
        """Execute a DELETE request."""
        return await self._verb(HttpMethod.DELETE, url, None, headers, options)

    async def _verb(  # noqa: PLR0913
        self,
        method: HttpMethod,
        url: str,
        body: object | None,
        headers: cabc.Mapping[str, str] | None,
        options: RequestOptions | None,
    ) -> object:
        descriptor = RequestDescriptor(
            url=url,
            method=method,
            headers=headers or {},
            body=body,
            options=options or RequestOptions(),
        )
        return await self.execute(descriptor)
