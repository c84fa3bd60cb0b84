"""Observability helpers."""

from co11y.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_aggregation,
    record_parser_failure,
    record_broadcast,
    record_client_count,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_aggregation",
    "record_parser_failure",
    "record_broadcast",
    "record_client_count",
]
