"""Metrics Worker: Structured JSON Logging."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from metrics_worker.config import settings

EXTRA_FIELDS = (
    "source",
    "repository",
    "category",
    "record_count",
    "duration_ms",
    "next_run_seconds",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    """Produces structured JSON log lines for production observability."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        # Attach extra fields if present
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)
        return json.dumps(log_entry, default=str)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a named logger with structured JSON handler."""
    logger = logging.getLogger(f"metrics_worker.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    level_name = (level or settings.log_level).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    return logger
