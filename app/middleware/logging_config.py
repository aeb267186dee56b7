"""
Structured logging configuration.

- Development / testing: readable colored lines on stderr
- Production: one JSON object per line (log aggregator compatible)
- Log level: LOG_LEVEL env variable

Every record passes through RequestContextFilter, so service-layer log lines
emitted while handling a request carry the same ``request_id`` as the timing
middleware's access line. Outside a request (CLI sweep, scheduled jobs) the id
is ``"-"``.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

NO_REQUEST = "-"

# Context keys promoted from ``extra=`` into the JSON payload
CONTEXT_KEYS = (
    "routine_id",
    "step_id",
    "user_profile_id",
    "duration_ms",
    "method",
    "path",
    "status",
    "remote_addr",
)


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` on every record unless the caller passed one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None):
            return True
        request_id = NO_REQUEST
        if has_request_context():
            request_id = getattr(g, "request_id", None) or NO_REQUEST
        record.request_id = request_id
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", NO_REQUEST),
        }
        for key in CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        request_id = getattr(record, "request_id", NO_REQUEST)
        rid = f" [{request_id}]" if request_id != NO_REQUEST else ""

        scope = " ".join(
            f"{key}={getattr(record, key)}"
            for key in ("routine_id", "step_id")
            if getattr(record, key, None)
        )
        duration = getattr(record, "duration_ms", None)
        tail = f" ({scope})" if scope else ""
        if duration is not None:
            tail += f" [{duration:.0f}ms]"

        line = (f"{color}{ts} {record.levelname:<8}{self.RESET}{rid} "
                f"{record.name}: {record.getMessage()}{tail}")
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Set up logging for the Flask app.

    LOG_LEVEL defaults to DEBUG in development, INFO in production.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())

    # Single root handler; re-running the factory (tests) must not duplicate it
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
