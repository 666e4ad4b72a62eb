"""Shared utilities for gateway landscape services."""

from shared.utils.context import (
    ContextMiddleware,
    CorrelationContext,
    current,
    get_correlation_id,
    propagate_context,
    request_scope,
    set_context,
)
from shared.utils.logging import configure_logging, get_logger
from shared.utils.metrics import MetricsMiddleware, create_counter, create_gauge, create_histogram

__all__ = [
    "ContextMiddleware",
    "CorrelationContext",
    "current",
    "get_correlation_id",
    "propagate_context",
    "request_scope",
    "set_context",
    "configure_logging",
    "get_logger",
    "MetricsMiddleware",
    "create_counter",
    "create_gauge",
    "create_histogram",
]
