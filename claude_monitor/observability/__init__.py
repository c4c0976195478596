"""Observability helpers."""

from claude_monitor.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_event,
    record_rejected,
    record_sweep,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_event",
    "record_rejected",
    "record_sweep",
]
