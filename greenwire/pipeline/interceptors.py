"""Ordered interceptor chain wrapped around every pipeline call.

Request interceptors, response interceptors and error interceptors all run
in registration order; the response side is not reversed.

Failure rules differ by stage:

- request side: an exception aborts the fold and propagates to the caller;
- response side: an exception is logged and absorbed, and folding continues
  with the value from before the failing interceptor. Raising
  :class:`~greenwire.pipeline.errors.InterceptorRejection` is the one way to
  turn a successful response into a failure;
- error side: an interceptor returns a (possibly different) error to pass
  along, ``None`` to leave it unchanged, or :class:`Recovered` to convert
  the failure into a success and skip the remaining error interceptors. An
  exception raised by an error interceptor aborts the remaining ones and
  propagates to the caller.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import inspect
import typing as typ

from .errors import InterceptorRejection, RequestError
from .models import Recovered, RequestDescriptor
from .observability import PipelineEventLogger

_T = typ.TypeVar("_T")

_ErrorResult: typ.TypeAlias = RequestError | Recovered | None

RequestInterceptor: typ.TypeAlias = cabc.Callable[
    [RequestDescriptor],
    RequestDescriptor | cabc.Awaitable[RequestDescriptor],
]
SuccessInterceptor: typ.TypeAlias = cabc.Callable[[object], object]
ErrorInterceptor: typ.TypeAlias = cabc.Callable[
    [RequestError],
    _ErrorResult | cabc.Awaitable[_ErrorResult],
]


async def _resolve(result: _T | cabc.Awaitable[_T]) -> _T:
    if inspect.isawaitable(result):
        return await result
    return result


@dc.dataclass(frozen=True, slots=True)
class ResponseInterceptor:
    """A success handler and an error handler registered together."""

    on_success: SuccessInterceptor | None = None
    on_error: ErrorInterceptor | None = None


class InterceptorChain:
    """Registry and fold logic for pipeline interceptors.

    Interceptors may be plain functions or coroutine functions; awaitable
    results are awaited before the next interceptor runs.
    """

    def __init__(self, event_logger: PipelineEventLogger | None = None) -> None:
        """Create an empty chain."""
        self._request: list[RequestInterceptor] = []
        self._response: list[ResponseInterceptor] = []
        self._event_logger = event_logger or PipelineEventLogger()

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> None:
        """Append a request interceptor."""
        self._request.append(interceptor)

    def add_response_interceptor(
        self,
        on_success: SuccessInterceptor | None = None,
        on_error: ErrorInterceptor | None = None,
    ) -> None:
        """Append a response interceptor pair; either side may be omitted."""
        self._response.append(
            ResponseInterceptor(on_success=on_success, on_error=on_error)
        )

    @property
    def request_interceptor_count(self) -> int:
        """Number of registered request interceptors."""
        return len(self._request)

    @property
    def response_interceptor_count(self) -> int:
        """Number of registered response interceptor pairs."""
        return len(self._response)

    async def apply_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Fold ``descriptor`` through every request interceptor.

        Raises
        ------
        TypeError
            If an interceptor returns something other than a descriptor.

        """
        current = descriptor
        for interceptor in self._request:
            result = await _resolve(interceptor(current))
            if not isinstance(result, RequestDescriptor):
                msg = (
                    "request interceptor must return a RequestDescriptor, "
                    f"got {type(result).__name__}"
                )
                raise TypeError(msg)
            current = result
        return current

    async def apply_response(self, value: object, *, is_error: bool = False) -> object:
        """Fold a response value, or an error when ``is_error`` is true.

        On the error side the result is either the final ``RequestError`` or
        a :class:`Recovered` wrapper.
        """
        if is_error:
            if not isinstance(value, RequestError):
                msg = f"expected a RequestError, got {type(value).__name__}"
                raise TypeError(msg)
            return await self._fold_errors(value)
        return await self._fold_success(value)

    async def _fold_success(self, value: object) -> object:
        current = value
        for interceptor in self._response:
            if interceptor.on_success is None:
                continue
            try:
                current = await _resolve(interceptor.on_success(current))
            except InterceptorRejection:
                raise
            except Exception as exc:  # noqa: BLE001 - response hooks must not fail the call
                self._event_logger.log_interceptor_failed("response", exc)
        return current

    async def _fold_errors(self, error: RequestError) -> RequestError | Recovered:
        current = error
        for interceptor in self._response:
            if interceptor.on_error is None:
                continue
            result = await _resolve(interceptor.on_error(current))
            if isinstance(result, Recovered):
                return result
            if result is None:
                continue
            if not isinstance(result, RequestError):
                msg = (
                    "error interceptor must return a RequestError, Recovered "
                    f"or None, got {type(result).__name__}"
                )
                raise TypeError(msg)
            current = result
        return current


__all__ = [
    "ErrorInterceptor",
    "InterceptorChain",
    "RequestInterceptor",
    "ResponseInterceptor",
    "SuccessInterceptor",
]
