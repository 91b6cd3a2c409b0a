"""
Project Lifecycle Service.

Moves a project through its status pipeline with:
  - Transition validation (PROJECT_TRANSITIONS)
  - Role checks on the target status (TRANSITION_ROLES)
  - Side effects (completed → stamp actual_end_date)
  - Audit trail via write_audit

Usage:
    from pmo_platform.services.lifecycle_service import transition_project

    result = transition_project(project_id, "sow_review", principal)
"""

import logging
from datetime import datetime, timezone

from pmo_platform.core.exceptions import InvalidTransitionError, NotFoundError
from pmo_platform.models import db
from pmo_platform.models.audit import write_audit
from pmo_platform.models.project import (
    TRANSITION_ROLES,
    Project,
    allowed_transitions,
    validate_project_transition,
)
from pmo_platform.services.role_authority import check_role

logger = logging.getLogger(__name__)


def transition_project(project_id: str, target_status: str, principal) -> dict:
    """
    Apply one lifecycle transition to a project.

    Raises:
        NotFoundError: Project does not exist.
        InvalidTransitionError: *target_status* is not an allowed successor
            (``details["allowed"]`` lists the successors).
        AuthorizationError: Target status requires a role the caller lacks.
    """
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError(resource="Project", resource_id=project_id)

    previous = project.status
    if not validate_project_transition(previous, target_status):
        raise InvalidTransitionError(previous, target_status, allowed_transitions(previous))

    required = TRANSITION_ROLES.get(target_status)
    if required:
        check_role(principal.role, required, f"transition a project to '{target_status}'")

    project.status = target_status
    if target_status == "completed":
        project.actual_end_date = datetime.now(timezone.utc).date()

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.transition",
        principal=principal,
        old={"status": previous},
        new={"status": target_status},
    )
    db.session.commit()

    logger.info(
        "Project transitioned %s → %s",
        previous, target_status,
        extra={"project_id": project.id, "user_id": principal.id, "action": "transition_project"},
    )
    return {
        "transitioned": True,
        "projectId": project.id,
        "previousStatus": previous,
        "newStatus": target_status,
    }
