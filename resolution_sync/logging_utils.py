"""
Structured JSON logging utilities.

Soft failures in the sync layer (remote timeouts, cache fallbacks, dropped
change-feed payloads) are only ever logged, so the log stream is the one
place they surface. These helpers emit single-line JSON records that carry
the collection and partition a message was logged for.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message"}

# Context fields emitted right after the message, in this order
CONTEXT_FIELDS = ("collection", "partition", "table", "record_id")


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for sync logs.

    Each record becomes one JSON object:
    - timestamp: time the record was created, ISO 8601 in UTC
    - level, logger, message
    - collection / partition / table / record_id when supplied
    - any other ``extra`` values, stringified if not JSON serializable
    - exception: formatted traceback, if any
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        for key in CONTEXT_FIELDS:
            if key in extras:
                log_obj[key] = _json_safe(extras.pop(key))
        for key, value in extras.items():
            log_obj[key] = _json_safe(value)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False)


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "resolution_sync",
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Send a logger's output through StructuredJsonFormatter.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger)
        stream: Destination stream (default: stdout)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that stamps every record with its collection.

    Per-call ``extra`` values (e.g. a partition) are kept; the adapter's
    own context fills in only what the call did not supply.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs
