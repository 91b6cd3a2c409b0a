"""
JWT Service — access token generation and verification.

Tokens are normally minted by the identity provider; ``generate_access_token``
exists for local tooling and tests.

Token payload:
{
    "sub": <profile_id>,
    "role": "project_manager",
    "email": "...",
    "full_name": "...",
    "org_id": "...",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from pmo_platform.core.principal import Principal

DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_algorithm():
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def generate_access_token(
    user_id: str,
    role: str,
    *,
    email: str | None = None,
    full_name: str | None = None,
    org_id: str | None = None,
    expires_in: int = DEFAULT_ACCESS_EXPIRES,
) -> str:
    """Generate a short-lived access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "email": email,
        "full_name": full_name,
        "org_id": org_id,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=_get_algorithm())


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[_get_algorithm()])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    if not payload.get("sub") or not payload.get("role"):
        raise jwt.InvalidTokenError("Token is missing subject or role")
    return payload


def principal_from_payload(payload: dict) -> Principal:
    return Principal(
        id=str(payload["sub"]),
        role=payload["role"],
        email=payload.get("email"),
        full_name=payload.get("full_name"),
        org_id=payload.get("org_id"),
    )
