"""
GitHub Integration Blueprint.

Endpoints:
    POST /api/v1/github-integration
         Body: { "action": "<name>", ...camelCase fields }

Actions:
    connect_repo       projectId, repoUrl
    disconnect_repo    projectId
    sync_to_github     ticketId
    sync_from_github   projectId
    store_token        githubToken (empty clears it)
    webhook            webhookEvent, webhookPayload

User actions call GitHub with the caller's stored token when there is one,
otherwise with GITHUB_TOKEN. The webhook always uses GITHUB_TOKEN.

The webhook action needs no bearer token. It is authenticated by the
``X-Hub-Signature-256`` header instead: HMAC-SHA256 of the raw request body
keyed with GITHUB_WEBHOOK_SECRET, verified before anything is parsed further.
"""

import logging

from flask import Blueprint, current_app, request

from pmo_platform.core.exceptions import ValidationError
from pmo_platform.services import github_sync_service
from pmo_platform.utils.errors import api_success
from pmo_platform.utils.helpers import parse_json_body, require_fields, require_principal

logger = logging.getLogger(__name__)

github_bp = Blueprint("github_integration", __name__, url_prefix="/api/v1")


def _connect_repo(body, principal):
    require_fields(body, "projectId", "repoUrl")
    return github_sync_service.connect_repo(body["projectId"], body["repoUrl"], principal)


def _disconnect_repo(body, principal):
    require_fields(body, "projectId")
    return github_sync_service.disconnect_repo(body["projectId"], principal)


def _sync_to_github(body, principal):
    require_fields(body, "ticketId")
    return github_sync_service.sync_ticket_to_github(body["ticketId"], principal)


def _sync_from_github(body, principal):
    require_fields(body, "projectId")
    return github_sync_service.pull_issues(body["projectId"], principal)


def _store_token(body, principal):
    if "githubToken" not in body:
        raise ValidationError("githubToken is required", details={"missing": ["githubToken"]})
    return github_sync_service.store_github_token(principal, body["githubToken"])


ACTIONS = {
    "connect_repo": _connect_repo,
    "disconnect_repo": _disconnect_repo,
    "sync_to_github": _sync_to_github,
    "sync_from_github": _sync_from_github,
    "store_token": _store_token,
}


def _handle_webhook(body):
    github_sync_service.verify_webhook_signature(
        current_app.config.get("GITHUB_WEBHOOK_SECRET"),
        request.get_data(),
        request.headers.get("X-Hub-Signature-256"),
    )
    require_fields(body, "webhookEvent", "webhookPayload")
    event = body["webhookEvent"]
    logger.info("Processing GitHub webhook %s", event, extra={"action": "webhook"})
    return github_sync_service.handle_webhook(event, body["webhookPayload"])


@github_bp.route("/github-integration", methods=["POST"])
def github_action():
    """Dispatch one GitHub integration action."""
    body = parse_json_body()
    action = body.get("action")

    if action == "webhook":
        return api_success(_handle_webhook(body))

    principal = require_principal()
    handler = ACTIONS.get(action)
    if handler is None:
        raise ValidationError(
            f"Unknown action: {action}", details={"allowed": sorted([*ACTIONS, "webhook"])},
        )

    logger.info("GitHub action %s", action, extra={"user_id": principal.id, "action": action})
    return api_success(handler(body, principal))
