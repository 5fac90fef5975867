"""Structured logging configuration for production observability.

This module provides JSON-formatted logging for:
- Easy integration with log aggregation systems (ELK, Splunk, CloudWatch)
- Structured querying and filtering
- Machine-readable log output

Raw prompts, model responses and document bytes never go through here;
callers pass only identifiers, counters and truncated previews in ``extra``.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from invoice_pipeline.core.settings import PipelineSettings, get_settings

# Fields copied from ``extra={...}`` into the JSON record
STRUCTURED_FIELDS = (
    "trace_id",
    "job_id",
    "error_code",
    "service",
    "provider",
    "model",
    "attempt",
    "outcome",
    "category",
    "decision",
    "duration_ms",
    "http_status",
    "status_code",
    "retry_attempt",
    "delay_ms",
    "host",
    "bytes",
    "tokens",
    "document_category",
    "delivery_mode",
    "stage",
    "preview",
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs logs as JSON with standard fields plus any extra context
    provided via the 'extra' parameter in logger calls.

    Example:
        >>> logger.info("llm_attempt", extra={"attempt": 1, "outcome": "ok"})
        # Output: {"timestamp": "2025-12-05T17:52:00Z", "level": "INFO",
        #          "message": "llm_attempt", "attempt": 1, "outcome": "ok"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .replace(tzinfo=None)
            .isoformat()
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.process:
            log_data["process_id"] = record.process

        for key in STRUCTURED_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_structured_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatter (True) or plain text (False)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def configure_logging_from_settings(settings: Optional[PipelineSettings] = None) -> None:
    """Apply LOG_LEVEL and LOG_JSON from settings."""
    settings = settings or get_settings().pipeline
    configure_structured_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
