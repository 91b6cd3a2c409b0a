"""
Logging setup for the PMO Platform.

Two output formats, picked by ``LOG_FORMAT`` (``json`` or ``readable``):

    json      one JSON document per line, for the log shipper
    readable  single-line text for a terminal

Workflow and sync code logs with ``extra={...}`` context (ticket_id,
issue_number, signoff_id, ...). ``RequestIdFilter`` stamps the current
request id onto every record so a sync run can be traced end to end.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_app_context

# Context keys lifted from ``extra=`` into the output
CONTEXT_KEYS = (
    "request_id",
    "user_id",
    "action",
    "project_id",
    "artifact_id",
    "signoff_id",
    "ticket_id",
    "issue_number",
    "error_code",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


class RequestIdFilter(logging.Filter):
    """Attach ``request_id`` to records emitted while a request is served."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_app_context():
            record.request_id = getattr(g, "request_id", None)
        return True


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_KEYS
        if getattr(record, key, None) not in (None, "")
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        doc = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            doc["exception"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 WARNING  pmo_platform.services.x: message  ticket_id=... (req)``"""

    def format(self, record: logging.LogRecord) -> str:
        ctx = _context(record)
        req_id = ctx.pop("request_id", None)
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        if ctx:
            line += "  " + " ".join(f"{k}={v}" for k, v in ctx.items())
        if req_id:
            line += f" ({req_id})"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger.

    Existing root handlers are replaced, so creating several apps in one
    process (the test suite does) never duplicates output.
    """
    level_name = str(app.config.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = app.config.get("LOG_FORMAT") or "readable"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
