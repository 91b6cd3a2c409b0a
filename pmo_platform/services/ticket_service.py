"""
Ticket assignment service.

Assignees must be members of the ticket's project. Bulk assignment is all
or nothing: one unknown ticket or one project the assignee does not belong
to fails the whole call before anything is written.
"""

import logging

from pmo_platform.core.exceptions import NotFoundError, ValidationError
from pmo_platform.models import db
from pmo_platform.models.audit import write_audit
from pmo_platform.models.project import ProjectMember
from pmo_platform.models.ticket import Ticket
from pmo_platform.services.role_authority import check_role

logger = logging.getLogger(__name__)

ASSIGNER_ROLES = ("project_manager", "tech_lead")


def _is_member(project_id: str, profile_id: str) -> bool:
    return (
        ProjectMember.query.filter_by(project_id=project_id, profile_id=profile_id).first()
        is not None
    )


def assign_ticket(ticket_id: str, assignee_id: str, principal) -> dict:
    """Assign one ticket to a project member."""
    if not ticket_id or not assignee_id:
        raise ValidationError("ticketId and assigneeId are required")
    check_role(principal.role, ASSIGNER_ROLES, "assign tickets")

    ticket = db.session.get(Ticket, ticket_id)
    if not ticket:
        raise NotFoundError(resource="Ticket", resource_id=ticket_id)
    if not _is_member(ticket.project_id, assignee_id):
        raise ValidationError("Assignee is not a member of this project")

    previous = ticket.assignee_id
    ticket.assignee_id = assignee_id
    write_audit(
        entity_type="ticket",
        entity_id=ticket.id,
        action="ticket.assign",
        principal=principal,
        old={"assignee_id": previous},
        new={"assignee_id": assignee_id},
    )
    db.session.commit()

    logger.info(
        "Ticket assigned",
        extra={"ticket_id": ticket.id, "user_id": principal.id, "action": "assign_ticket"},
    )
    return {"assigned": True, "ticketId": ticket.id, "assigneeId": assignee_id}


def bulk_assign(ticket_ids, assignee_id: str, principal) -> dict:
    """Assign several tickets to the same profile in one transaction."""
    ids = list(dict.fromkeys(t for t in (ticket_ids or []) if t))
    if not ids or not assignee_id:
        raise ValidationError("ticketIds array and assigneeId are required")
    check_role(principal.role, ASSIGNER_ROLES, "assign tickets")

    tickets = Ticket.query.filter(Ticket.id.in_(ids)).all()
    found = {t.id for t in tickets}
    missing = [t for t in ids if t not in found]
    if missing:
        raise NotFoundError(resource="Ticket", resource_id=", ".join(missing))

    for project_id in {t.project_id for t in tickets}:
        if not _is_member(project_id, assignee_id):
            raise ValidationError(
                "Assignee is not a member of this project",
                details={"projectId": project_id},
            )

    for ticket in tickets:
        previous = ticket.assignee_id
        ticket.assignee_id = assignee_id
        write_audit(
            entity_type="ticket",
            entity_id=ticket.id,
            action="ticket.assign",
            principal=principal,
            old={"assignee_id": previous},
            new={"assignee_id": assignee_id},
        )
    db.session.commit()

    logger.info(
        "Bulk assigned %d tickets", len(tickets),
        extra={"user_id": principal.id, "action": "bulk_assign"},
    )
    return {"assigned": True, "ticketCount": len(tickets), "assigneeId": assignee_id}
