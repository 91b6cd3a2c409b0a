"""
Staff Actions Blueprint.

One POST endpoint dispatching on the ``action`` field of the JSON body.

Endpoints:
    POST /api/v1/staff-actions
         Body: { "action": "<name>", ...camelCase fields }

Actions:
    approve_artifact        signoffId, comments?
    reject_artifact         signoffId, comments
    request_changes         signoffId, comments
    delegate_signoff        signoffId, delegateToId, comments?
    create_signoff_request  artifactId, approverIds[], dueDate?
    transition_project      projectId, targetStatus
    assign_ticket           ticketId, assigneeId
    bulk_assign             ticketIds[], assigneeId

Layer contract:
    - Blueprint: parse + validate input, call service, render envelope.
    - NO db.session calls here; the services own every write.
    - NO inline role checks; business guards live in the services.
"""

import logging

from flask import Blueprint

from pmo_platform.core.exceptions import ValidationError
from pmo_platform.services import lifecycle_service, signoff_service, ticket_service
from pmo_platform.utils.errors import api_success
from pmo_platform.utils.helpers import parse_date, parse_json_body, require_fields, require_principal

logger = logging.getLogger(__name__)

staff_actions_bp = Blueprint("staff_actions", __name__, url_prefix="/api/v1")


# ── Action handlers ────────────────────────────────────────────────────────────


def _approve_artifact(body, principal):
    require_fields(body, "signoffId")
    return signoff_service.approve_signoff(body["signoffId"], principal, body.get("comments"))


def _reject_artifact(body, principal):
    require_fields(body, "signoffId")
    return signoff_service.reject_signoff(body["signoffId"], principal, body.get("comments"))


def _request_changes(body, principal):
    require_fields(body, "signoffId")
    return signoff_service.request_changes(body["signoffId"], body.get("comments"), principal)


def _delegate_signoff(body, principal):
    require_fields(body, "signoffId", "delegateToId")
    return signoff_service.delegate_signoff(
        body["signoffId"], principal, body["delegateToId"], body.get("comments"),
    )


def _create_signoff_request(body, principal):
    require_fields(body, "artifactId", "approverIds")
    approver_ids = body["approverIds"]
    if not isinstance(approver_ids, list):
        raise ValidationError("approverIds must be an array")
    return signoff_service.create_signoff_request(
        body["artifactId"], approver_ids, principal,
        due_date=parse_date(body.get("dueDate"), "dueDate"),
    )


def _transition_project(body, principal):
    require_fields(body, "projectId", "targetStatus")
    return lifecycle_service.transition_project(body["projectId"], body["targetStatus"], principal)


def _assign_ticket(body, principal):
    require_fields(body, "ticketId", "assigneeId")
    return ticket_service.assign_ticket(body["ticketId"], body["assigneeId"], principal)


def _bulk_assign(body, principal):
    require_fields(body, "ticketIds", "assigneeId")
    if not isinstance(body["ticketIds"], list):
        raise ValidationError("ticketIds must be an array")
    return ticket_service.bulk_assign(body["ticketIds"], body["assigneeId"], principal)


ACTIONS = {
    "approve_artifact": _approve_artifact,
    "reject_artifact": _reject_artifact,
    "request_changes": _request_changes,
    "delegate_signoff": _delegate_signoff,
    "create_signoff_request": _create_signoff_request,
    "transition_project": _transition_project,
    "assign_ticket": _assign_ticket,
    "bulk_assign": _bulk_assign,
}


# ── Route ──────────────────────────────────────────────────────────────────────


@staff_actions_bp.route("/staff-actions", methods=["POST"])
def staff_action():
    """Dispatch one staff action for the authenticated caller."""
    principal = require_principal()
    body = parse_json_body()

    action = body.get("action")
    handler = ACTIONS.get(action)
    if handler is None:
        raise ValidationError(f"Unknown action: {action}", details={"allowed": sorted(ACTIONS)})

    logger.info("Staff action %s", action, extra={"user_id": principal.id, "action": action})
    return api_success(handler(body, principal))
