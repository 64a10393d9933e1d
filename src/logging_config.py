"""Logging setup for the attribution service.

Text lines locally, JSON lines when ``LOG_FORMAT=json``. Every record carries
the X-Request-ID of the visit that produced it, so a click logged in the
background can be traced back to its page view.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from config.settings import settings
from src.middleware.request_id import request_id_var

SERVICE_NAME = "storefront-attribution"

# Structured extras passed as ``extra={...}`` by trackers and the click logger
_ATTRIBUTION_FIELDS = ("channel", "code", "entity_id")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"


class RequestIDFilter(logging.Filter):
    """Copy the request id from context onto the record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", "-")
        if request_id != "-":
            line["request_id"] = request_id
        for name in _ATTRIBUTION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                line[name] = value
        if record.exc_info and record.exc_info[1]:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """Install one stdout handler on the root logger."""
    log_format = log_format or settings.LOG_FORMAT
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDFilter())
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
