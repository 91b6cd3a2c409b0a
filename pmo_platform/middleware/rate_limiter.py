"""
Rate limits for the action endpoints (Flask-Limiter).

Authenticated calls are counted per principal, anonymous ones (the signed
GitHub webhook) per remote address. The Limiter itself lives in
``pmo_platform/__init__.py`` without default limits.
"""

from flask import g
from flask_limiter.util import get_remote_address

BLUEPRINT_LIMITS = {
    "staff_actions": "60/minute",
    # GitHub delivers webhooks in bursts when issues are bulk-edited
    "github_integration": "120/minute",
}


def rate_limit_key() -> str:
    principal = getattr(g, "principal", None)
    if principal is not None:
        return f"principal:{principal.id}"
    return f"ip:{get_remote_address()}"


def init_rate_limits(app, limiter):
    """Attach ``BLUEPRINT_LIMITS`` to the registered blueprints."""
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    for name, limit in BLUEPRINT_LIMITS.items():
        blueprint = app.blueprints.get(name)
        if blueprint is not None:
            limiter.limit(limit)(blueprint)
            app.logger.info("Rate limit %s applied to %s", limit, name)
