"""OpenTelemetry tracing helpers.

Spans are created through the global tracer provider; when no SDK is
configured the OpenTelemetry API hands out non-recording spans, so callers never
need to check whether tracing is active.

Examples
--------
>>> from apiviz_common.observability import start_span
>>> with start_span("apiviz.render", attributes={"document": "a/b.yaml"}):
...     pass
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from opentelemetry import trace as trace_api
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

__all__ = ["start_span"]


@contextmanager
def start_span(
    name: str,
    attributes: Mapping[str, str | int | float | bool] | None = None,
) -> Iterator[None]:
    """Start an OpenTelemetry span named ``name``.

    Exceptions raised inside the block are recorded on the span, which is
    marked as errored, and then re-raised.
    """
    tracer = trace_api.get_tracer(__name__)
    with tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            raise
