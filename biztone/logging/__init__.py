"""Logging and observability module."""

from biztone.logging.structured import StructuredLogger, configure_logging, get_logger
from biztone.logging.metrics import MetricsExporter, get_metrics

__all__ = ["StructuredLogger", "configure_logging", "get_logger", "MetricsExporter", "get_metrics"]
