"""Process-wide logging setup for the API process, the worker and the scheduler."""

import json
import logging
from typing import Optional

from .config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_obj)


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None) -> None:
    """Configure the root logger from settings."""
    use_structured = settings.structured_logs if structured is None else structured

    handler = logging.StreamHandler()
    if use_structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.root.handlers = [handler]
    logging.root.setLevel((level or settings.log_level).upper())

    # Reduce noise from libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.INFO)
