"""Observability package for logging and metrics."""

from echodesk_core.observability.logging import (
    JsonFormatter,
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from echodesk_core.observability.metrics import MetricsCollector, get_collector

__all__ = [
    "JsonFormatter",
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "MetricsCollector",
    "get_collector",
]
