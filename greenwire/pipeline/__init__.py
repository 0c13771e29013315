"""Request pipeline: interceptors, response cache and cancellable transport.

Public API
----------
RequestPipeline
    Executes requests and records one telemetry event per call.
PipelineDependencies
    Transport, cache, recorder and credentials for a pipeline.
CredentialProvider
    Protocol for the bearer token and the auth-failure hook.
RequestDescriptor, RequestOptions, HttpMethod
    Immutable request description.
Recovered
    Returned by an error interceptor to turn a failure into a success.
InterceptorChain
    Ordered request, response and error interceptors.
ResponseCache
    TTL cache for GET responses with optional LRU bound.
HttpxRequestTransport
    httpx-backed request transport.
RequestError
    Base of the classified failures (timeout, transport, HTTP status,
    interceptor rejection, auth failure).

"""

from __future__ import annotations

from greenwire.pipeline.cache import CacheStats, ResponseCache
from greenwire.pipeline.errors import (
    AuthFailure,
    HttpStatusError,
    InterceptorRejection,
    RequestError,
    RequestErrorKind,
    RequestTimeoutError,
    ResponseDecodeError,
    TransportFailure,
)
from greenwire.pipeline.interceptors import InterceptorChain
from greenwire.pipeline.models import (
    HttpMethod,
    Recovered,
    RequestDescriptor,
    RequestOptions,
    TransportResponse,
    cache_key,
)
from greenwire.pipeline.service import (
    CredentialProvider,
    PipelineDependencies,
    RequestPipeline,
    bearer_token_interceptor,
)
from greenwire.pipeline.transport import HttpxRequestTransport, RequestTransport

__all__ = [
    "AuthFailure",
    "CacheStats",
    "CredentialProvider",
    "HttpMethod",
    "HttpStatusError",
    "HttpxRequestTransport",
    "InterceptorChain",
    "InterceptorRejection",
    "PipelineDependencies",
    "Recovered",
    "RequestDescriptor",
    "RequestError",
    "RequestErrorKind",
    "RequestOptions",
    "RequestPipeline",
    "RequestTimeoutError",
    "RequestTransport",
    "ResponseCache",
    "ResponseDecodeError",
    "TransportFailure",
    "TransportResponse",
    "bearer_token_interceptor",
    "cache_key",
]
