"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

from opentelemetry import trace

_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_dimension: ContextVar[str] = ContextVar("dimension", default="")
_event_id: ContextVar[str] = ContextVar("event_id", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    stage: Optional[str] = None,
    dimension: Optional[str] = None,
    event_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if stage is not None:
        _stage_name.set(stage)
    if dimension is not None:
        _dimension.set(dimension)
    if event_id is not None:
        _event_id.set(event_id)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_current_trace_ids() -> tuple[str, str] | None:
    """Return (trace_id, span_id) hex strings for the active span, if any."""
    span_ctx = trace.get_current_span().get_span_context()
    if not span_ctx.is_valid:
        return None
    return format(span_ctx.trace_id, "032x"), format(span_ctx.span_id, "016x")


def get_log_context() -> Dict[str, str]:
    context = {
        "stage": _stage_name.get(),
        "dimension": _dimension.get(),
        "event_id": _event_id.get(),
        "trace_id": _trace_id.get(),
    }

    # Add OpenTelemetry trace context if a span is active
    trace_ids = get_current_trace_ids()
    if trace_ids is not None:
        context["otel_trace_id"], context["otel_span_id"] = trace_ids

    return context


def clear_log_context() -> None:
    _stage_name.set("")
    _dimension.set("")
    _event_id.set("")
    _trace_id.set("")
