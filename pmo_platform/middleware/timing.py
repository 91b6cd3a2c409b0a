"""
Request id and timing middleware.

Every request gets an id: the caller's ``X-Request-ID`` when it looks sane,
a fresh one otherwise. The id is stored on ``g``, echoed in the
``X-Request-ID`` response header and placed in every response envelope.
Action calls are logged with their duration; slow ones at WARNING.
"""

import logging
import re
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_UNLOGGED_PATHS = frozenset({"/api/v1/health"})


def current_request_id() -> str:
    """Id of the request being served ("" outside a request)."""
    return getattr(g, "request_id", "") if g else ""


def _incoming_request_id():
    candidate = request.headers.get("X-Request-ID", "")
    if _REQUEST_ID_RE.match(candidate):
        return candidate
    return uuid.uuid4().hex[:12]


def init_request_timing(app: Flask):
    @app.before_request
    def _assign_request_id():
        g.request_id = _incoming_request_id()
        g.request_started = time.perf_counter()

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_started", None)
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"
        if request.path in _UNLOGGED_PATHS:
            return response

        principal = getattr(g, "principal", None)
        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": round(elapsed_ms, 1),
            "remote_addr": request.remote_addr,
            "user_id": principal.id if principal else None,
        }
        if response.status_code >= 500:
            level = logging.ERROR
        elif elapsed_ms > SLOW_THRESHOLD_MS:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(level, "%s %s -> %d", request.method, request.path, response.status_code, extra=extra)
        return response
