"""Value types flowing through the request pipeline."""

from __future__ import annotations

import dataclasses as dc
import enum
import types
import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class HttpMethod(enum.StrEnum):
    """HTTP methods issued by the pipeline."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dc.dataclass(frozen=True, slots=True)
class RequestOptions:
    """Per-request switches.

    Attributes
    ----------
    use_cache
        Set to false to bypass the response cache for an otherwise cacheable
        GET.
    timeout_ms
        Overrides the configured transport deadline for this call.

    """

    use_cache: bool = True
    timeout_ms: int | None = None


@dc.dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """Immutable description of one outbound request.

    Interceptors never mutate a descriptor; they return a new one (see
    :meth:`replace` and :meth:`with_header`), so every intermediate stage can
    be inspected.

    Attributes
    ----------
    url
        Absolute URL or a path relative to the configured base URL.
    method
        HTTP method; normalised to upper case.
    headers
        Read-only header mapping.
    body
        JSON-serialisable payload, raw ``bytes``, ``str`` or ``None``.
    options
        Per-request switches.

    """

    url: str
    method: str = HttpMethod.GET
    headers: cabc.Mapping[str, str] = dc.field(default_factory=dict)
    body: object | None = None
    options: RequestOptions = dc.field(default_factory=RequestOptions)

    def __post_init__(self) -> None:
        """Normalise the method and freeze the header mapping."""
        object.__setattr__(self, "method", str(self.method).upper())
        object.__setattr__(self, "headers", types.MappingProxyType(dict(self.headers)))

    def replace(self, **changes: typ.Any) -> RequestDescriptor:  # noqa: ANN401
        """Return a copy with ``changes`` applied."""
        return dc.replace(self, **changes)

    def with_header(self, name: str, value: str) -> RequestDescriptor:
        """Return a copy with header ``name`` set to ``value``."""
        return self.replace(headers={**self.headers, name: value})

    @property
    def is_cacheable(self) -> bool:
        """True for GET requests that have not opted out of caching."""
        return self.method == HttpMethod.GET and self.options.use_cache


@dc.dataclass(frozen=True, slots=True)
class Recovered:
    """Returned by an error interceptor to turn a failure into a success."""

    value: object


@dc.dataclass(frozen=True, slots=True)
class TransportResponse:
    """Raw response handed back by a request transport."""

    status_code: int
    content: bytes = b""
    reason: str = ""
    headers: cabc.Mapping[str, str] = dc.field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True for 2xx responses."""
        return 200 <= self.status_code < 300  # noqa: PLR2004


def encode_body(body: object | None) -> bytes | None:
    """Serialise a descriptor body for the wire."""
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return msgspec.json.encode(body)


def _canonical_body(body: object | None) -> str:
    if body is None:
        return ""
    if isinstance(body, bytes):
        return f"hex:{body.hex()}"
    if isinstance(body, str):
        return body
    return msgspec.json.encode(body, order="sorted").decode("utf-8")


def cache_key(descriptor: RequestDescriptor, *, absolute_url: str) -> str:
    """Return the cache identity of ``descriptor``.

    The key covers method, absolute URL and the canonical body (JSON with
    sorted keys). Headers are deliberately excluded: two requests that differ
    only in header values share a cache entry.
    """
    return f"{descriptor.method}:{absolute_url}:{_canonical_body(descriptor.body)}"


__all__ = [
    "HttpMethod",
    "Recovered",
    "RequestDescriptor",
    "RequestOptions",
    "TransportResponse",
    "cache_key",
    "encode_body",
]
