"""Logging and telemetry configuration."""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ROOT_LOGGER = "frame_sync"

_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()) | {"message", "asctime"}


def setup_logging(level: str = "INFO", fmt: str = "json", stream: Any = None) -> logging.Logger:
    """Configure the package logger with a JSON or plain text handler."""
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, merging dict messages into the payload."""
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            payload["message"] = record.getMessage()

        for key, value in vars(record).items():
            if key not in _RESERVED and key not in payload:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def log_timing(operation: str, duration_ms: float, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Log operation timing metrics."""
    event: Dict[str, Any] = {
        "event": "timing",
        "operation": operation,
        "duration_ms": round(duration_ms, 2),
    }
    if metadata:
        event.update(metadata)
    logging.getLogger(f"{ROOT_LOGGER}.telemetry").debug(event)
