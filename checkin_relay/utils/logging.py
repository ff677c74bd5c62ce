"""Logging configuration."""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from checkin_relay.core.config import Settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Client libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "pymongo")

# Anything else on a record came in through ``extra=``
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, stamped with service and environment.

    Structured fields passed via ``extra=`` (attempt numbers, delays,
    searched tokens, row outcomes) are emitted as top-level keys.
    """

    def __init__(self, service_name: str, environment: str):
        super().__init__()
        self.static_fields = {"service": service_name, "environment": environment}

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **self.static_fields,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(
            (key, value) for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS
        )

        return json.dumps(log_data, default=str)


def build_formatter(settings: Settings) -> logging.Formatter:
    if settings.log_format == "json":
        return JSONFormatter(settings.service_name, settings.environment)
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(settings: Settings):
    """Route all logging to stdout in the configured format."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(settings))

    logging.root.handlers = [handler]
    logging.root.setLevel(settings.log_level)

    for name in ("uvicorn", "fastapi"):
        logging.getLogger(name).setLevel(settings.log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
