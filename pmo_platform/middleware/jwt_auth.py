"""
Bearer token middleware.

Sets ``g.principal`` for every ``/api/v1/`` request. A missing, expired or
invalid token leaves it ``None``: the action dispatchers decide whether the
requested action needs a caller (everything except the signed GitHub
webhook does) and answer 401 themselves.
"""

import logging

import jwt as pyjwt
from flask import g, request

from pmo_platform.services.jwt_service import decode_access_token, principal_from_payload

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
PUBLIC_PATHS = frozenset({"/api/v1/health"})


def _bearer_token():
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def init_jwt_middleware(app):
    @app.before_request
    def _resolve_principal():
        g.principal = None
        if not request.path.startswith(API_PREFIX) or request.path in PUBLIC_PATHS:
            return

        token = _bearer_token()
        if token is None:
            return
        try:
            g.principal = principal_from_payload(decode_access_token(token))
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", request.path)
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected access token on %s: %s", request.path, exc)
