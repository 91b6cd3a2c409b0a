"""Standardised API responses and the app-level error handler.

Usage
-----
    from pmo_platform.utils.errors import api_success, api_error

    return api_success({"approved": True})
    return api_error("NOT_FOUND", "Signoff not found", status=404)

Every response body carries ``requestId`` (assigned by the timing
middleware):

    {"success": true, "data": {...}, "requestId": "..."}
    {"success": false, "error": {"code", "message", "details"}, "requestId": "..."}
"""

from __future__ import annotations

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from pmo_platform.core.exceptions import PlatformError
from pmo_platform.middleware.timing import current_request_id

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable codes for errors that are not PlatformError subclasses."""

    INTERNAL = "INTERNAL_ERROR"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    BAD_REQUEST = "BAD_REQUEST"


_HTTP_CODES: dict[int, str] = {
    400: E.BAD_REQUEST,
    404: E.NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    429: E.RATE_LIMITED,
}


def api_success(data, status: int = 200):
    """Return the standard success envelope."""
    return jsonify({"success": True, "data": data, "requestId": current_request_id()}), status


def api_error(
    code: str,
    message: str,
    *,
    status: int = 400,
    details: dict | None = None,
):
    """Return the standard error envelope.

    Parameters
    ----------
    code : str
        Machine-readable error code.
    message : str
        Human-readable explanation for developers / UI.
    status : int
        HTTP status.
    details : dict, optional
        Extra structured payload (allowed transitions, GitHub status, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    body = {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
        "requestId": current_request_id(),
    }
    return jsonify(body), status


def register_error_handlers(app):
    """Translate every exception escaping a view into the error envelope."""

    @app.errorhandler(PlatformError)
    def _platform_error(exc: PlatformError):
        extra = {"request_id": current_request_id(), "error_code": exc.code}
        if exc.is_operational:
            logger.warning("%s: %s", exc.code, exc.message, extra=extra)
        else:
            logger.error("%s: %s", exc.code, exc.message, extra=extra)
        return api_error(exc.code, exc.message, status=exc.status_code, details=exc.details)

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        status = exc.code or 500
        code = _HTTP_CODES.get(status, E.INTERNAL if status >= 500 else E.BAD_REQUEST)
        return api_error(code, exc.description or exc.name, status=status)

    @app.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        logger.exception("Unhandled error", extra={"request_id": current_request_id()})
        return api_error(E.INTERNAL, "An unexpected error occurred", status=500)
