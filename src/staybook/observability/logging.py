"""JSON-lines logging for Cloud Run.

Each record is one JSON object on stdout. ``severity`` is the field Cloud
Logging reads; ``correlationId`` ties webhook, request and task logs together.
Context goes in ``extra={"extra_fields": safe_log_context(...)}``.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": record.levelname,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        service = os.environ.get("K_SERVICE")
        if service:
            entry["service"] = service

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlationId"] = correlation_id

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(getattr(record, "extra_fields", None) or {})
        return json.dumps(entry, default=str)


def _level_from_env() -> int:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Logger writing JSON lines to stdout at LOG_LEVEL (default INFO)."""
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_from_env())
        logger.propagate = False

    return logger
