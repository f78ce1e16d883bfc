"""
Structured logging for the tone guard.

All logs are JSON-formatted for easy parsing and analysis. User text is
never written to the log; events carry its length and a short hash so
repeated submissions can be correlated.
"""

import hashlib
import json
import logging
import sys
from datetime import datetime
from enum import Enum
from typing import Any

import structlog


def json_serializer(obj: Any) -> str:
    """Custom JSON serializer for complex types."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return str(obj)


def text_fingerprint(text: str) -> dict[str, Any]:
    """Length and short digest of text, safe to log."""
    digest = hashlib.sha256((text or "").encode("utf-8")).hexdigest()[:12]
    return {"text_len": len(text or ""), "text_hash": digest}


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: Output format ("json" or "console").
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if format == "json":
        processors.append(structlog.processors.JSONRenderer(
            serializer=lambda obj, **kw: json.dumps(
                obj, default=json_serializer, ensure_ascii=False, **kw
            )
        ))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


class StructuredLogger:
    """Wrapper for structured logging of guard events.

    Provides convenient methods for logging guard events with the
    relevant context.
    """

    def __init__(self, name: str):
        """Initialize logger.

        Args:
            name: Logger name (usually module name).
        """
        self._logger = structlog.get_logger(name)

    def _log(self, level: str, event: str, **kwargs: Any) -> None:
        """Internal log method."""
        getattr(self._logger, level)(event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        """Log info message."""
        self._log("info", event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._log("warning", event, **kwargs)

    # Convenience methods for guard-specific events

    def log_verdict(
        self,
        context_id: str,
        text: str,
        stage: str,
        score: float,
        verdict: str,
        action: str,
        latency_ms: float,
    ) -> None:
        """Log the outcome of a guard evaluation.

        This is the primary log for analysis.
        """
        self.info(
            "guard_verdict",
            context_id=context_id,
            stage=stage,
            score=score,
            verdict=verdict,
            action=action,
            latency_ms=round(latency_ms, 2),
            **text_fingerprint(text),
        )

    def log_remote_failure(
        self,
        context_id: str,
        operation: str,
        error: str,
        fail_open: bool,
    ) -> None:
        """Log a conversion/decision service failure and the policy applied."""
        self.warning(
            "remote_service_failed",
            context_id=context_id,
            operation=operation,
            error=error,
            fail_open=fail_open,
        )

    def log_fallback(self, context_id: str, reason: str) -> None:
        """Log when the enhanced assessment falls back to the quick result."""
        self.warning(
            "enhanced_assessment_fallback",
            context_id=context_id,
            reason=reason,
        )


_loggers: dict[str, StructuredLogger] = {}


def get_logger(name: str) -> StructuredLogger:
    """Get or create a logger.

    Args:
        name: Logger name.

    Returns:
        StructuredLogger instance.
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]
