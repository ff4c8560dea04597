"""@traced decorator: OpenTelemetry spans around sync and async callables.

Spans go to whatever TracerProvider the host installed; with only
opentelemetry-api present they are no-ops.

Usage:
    @traced("learning.select")
    async def select(self, ...) -> ComponentSelection: ...
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, TypeVar

from opentelemetry import trace

F = TypeVar("F", bound=Callable[..., Any])

_TRACER_NAME = "promptbandit"


def _record_error(span: trace.Span, exc: BaseException) -> None:
    span.set_attribute("error", True)
    span.set_attribute("error.type", type(exc).__name__)
    span.record_exception(exc)


def traced(name: str) -> Callable[[F], F]:
    """Wrap a function in a span named ``name``. Exceptions are recorded and re-raised."""

    def decorator(fn: F) -> F:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                tracer = trace.get_tracer(_TRACER_NAME)
                with tracer.start_as_current_span(name) as span:
                    try:
                        return await fn(*args, **kwargs)
                    except Exception as exc:
                        _record_error(span, exc)
                        raise

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = trace.get_tracer(_TRACER_NAME)
            with tracer.start_as_current_span(name) as span:
                try:
                    return fn(*args, **kwargs)
                except Exception as exc:
                    _record_error(span, exc)
                    raise

        return sync_wrapper  # type: ignore[return-value]

    return decorator
