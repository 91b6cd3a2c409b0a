"""Request parsing helpers shared by the action blueprints."""

from datetime import date

from flask import g, request

from pmo_platform.core.exceptions import AuthenticationError, ValidationError


def parse_json_body() -> dict:
    """Return the JSON object body, or raise ValidationError."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def require_fields(body: dict, *names: str) -> None:
    missing = [n for n in names if body.get(n) in (None, "", [])]
    if missing:
        raise ValidationError(
            f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={"missing": missing},
        )


def parse_date(value, field: str) -> date | None:
    """Parse an ISO ``YYYY-MM-DD`` string (None passes through)."""
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


def require_principal():
    """Return the verified caller set by the JWT middleware."""
    principal = getattr(g, "principal", None)
    if principal is None:
        raise AuthenticationError()
    return principal
