"""
Tracing support (OpenTelemetry).

Provides context managers for manual span creation around business
operations. Without a configured SDK the OpenTelemetry API hands out
non-recording spans, so these helpers are always safe to call.
"""
from contextlib import contextmanager
from typing import Optional, Dict, Any

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

tracer = trace.get_tracer('jeewaka.api')

_SPAN_KINDS = {
    'server': SpanKind.SERVER,
    'client': SpanKind.CLIENT,
    'internal': SpanKind.INTERNAL,
}


@contextmanager
def trace_span(
    name: str,
    kind: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None
):
    """
    Context manager for creating trace spans.

    Usage:
        with trace_span('book_time_slot', attributes={'session_id': str(session_id)}):
            ...
    """
    span_kind = _SPAN_KINDS.get(kind, SpanKind.INTERNAL)

    with tracer.start_as_current_span(name, kind=span_kind) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)

        try:
            yield span
        except Exception as e:
            span.set_attribute('error.type', e.__class__.__name__)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
