"""Logging setup driven by the LOG_LEVEL and LOG_FORMAT settings."""

import json
import logging
from datetime import UTC, datetime

from app.core.config import LogFormatEnum, settings


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


SIMPLE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Install a single root handler. Safe to call more than once."""
    level = level or settings.log_level.value
    log_format = log_format or settings.log_format.value

    handler = logging.StreamHandler()
    if log_format == LogFormatEnum.json.value:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
