"""
Artifact Sign-off Workflow Service.

Manages multi-party approval of project artifacts.

Design decisions:
    - Requests are grouped in rounds. Requesting sign-off on an artifact that
      is already pending review adds approvers to the current round; any
      other request starts a new round. Only the current round decides the
      artifact status, earlier rounds stay as the approval trail.
    - The artifact status is never tracked incrementally: every decision
      re-reads the current round and reduces it with
      ``project_artifact_status``.
    - A single rejection vetoes the artifact. Outstanding Signoffs are left
      pending rather than auto-cancelled.
    - A delegated Signoff stays open; the delegate casts the decision.
    - IP address capture uses X-Forwarded-For to handle load-balancer setups.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone

from flask import has_request_context, request
from sqlalchemy import func

from pmo_platform.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from pmo_platform.models import db
from pmo_platform.models.artifact import OPEN_SIGNOFF_STATUSES, Artifact, Signoff
from pmo_platform.models.audit import write_audit
from pmo_platform.services.notification import NotificationService
from pmo_platform.services.role_authority import check_role

logger = logging.getLogger(__name__)

# Author-tier roles allowed to ask for sign-off (elevated roles always pass)
REQUESTER_ROLES = ("project_manager", "tech_lead", "developer")

# Artifacts in these states accept no decision
_UNDECIDABLE_ARTIFACT_STATUSES = frozenset({"draft", "superseded"})


# ── Private helpers ────────────────────────────────────────────────────────────


def _get_client_ip() -> str:
    """Return real client IP, honouring X-Forwarded-For from load balancers.

    The first entry of the comma-delimited header is the originating client.
    """
    if not has_request_context():
        return "unknown"
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _get_user_agent() -> str | None:
    if not has_request_context():
        return None
    ua = request.headers.get("User-Agent")
    return ua[:500] if ua else None


def _content_hash(content: str | None) -> str:
    return hashlib.sha256((content or "").encode("utf-8")).hexdigest()


def _current_round(artifact_id: str) -> int:
    """Highest round number of the artifact's Signoffs (0 when none exist)."""
    value = (
        db.session.query(func.max(Signoff.round))
        .filter(Signoff.artifact_id == artifact_id)
        .scalar()
    )
    return value or 0


def _round_statuses(artifact_id: str, round_no: int) -> list[str]:
    rows = (
        db.session.query(Signoff.status)
        .filter(Signoff.artifact_id == artifact_id, Signoff.round == round_no)
        .all()
    )
    return [row[0] for row in rows]


def _require_comments(comments: str | None, message: str) -> str:
    text = (comments or "").strip()
    if not text:
        raise ValidationError(message)
    return text


def _load_signoff(signoff_id: str) -> Signoff:
    if not signoff_id:
        raise ValidationError("signoffId is required")
    signoff = db.session.get(Signoff, signoff_id)
    if not signoff:
        raise NotFoundError(resource="Signoff", resource_id=signoff_id)
    return signoff


def _load_decidable(signoff_id: str, principal) -> tuple[Signoff, Artifact]:
    """Load a Signoff the principal may decide now, or raise.

    Raises:
        NotFoundError: Signoff or its artifact is missing.
        AuthorizationError: Principal is neither assignee nor delegate.
        ConflictError: Signoff already decided, belongs to an earlier round,
            or the artifact is not awaiting review.
    """
    signoff = _load_signoff(signoff_id)
    artifact = signoff.artifact
    if artifact is None:
        raise NotFoundError(resource="Artifact", resource_id=signoff.artifact_id)

    if not signoff.is_decider(principal.id):
        raise AuthorizationError("You are not assigned to this signoff")

    if signoff.status not in OPEN_SIGNOFF_STATUSES:
        raise ConflictError(
            f"Signoff is not open for decision (status: {signoff.status})",
            details={"status": signoff.status},
        )
    current = _current_round(artifact.id)
    if signoff.round != current:
        raise ConflictError(
            "Signoff belongs to a superseded sign-off round",
            details={"round": signoff.round, "currentRound": current},
        )
    if artifact.status in _UNDECIDABLE_ARTIFACT_STATUSES:
        raise ConflictError(
            f"Artifact is not awaiting review (status: {artifact.status})",
            details={"artifactStatus": artifact.status},
        )
    return signoff, artifact


# ── Pure reducer ───────────────────────────────────────────────────────────────


def project_artifact_status(statuses) -> str:
    """Reduce the Signoff statuses of one round to the artifact status.

    Any rejection vetoes; a non-empty, fully approved round approves;
    everything else is still pending review.
    """
    statuses = list(statuses)
    if "rejected" in statuses:
        return "rejected"
    if statuses and all(s == "approved" for s in statuses):
        return "approved"
    return "pending_review"


# ── Public API ─────────────────────────────────────────────────────────────────


def create_signoff_request(artifact_id: str, approver_ids, principal, due_date=None) -> dict:
    """Fan out one pending Signoff per approver and notify each approver.

    Args:
        artifact_id:   Artifact to put under review.
        approver_ids:  Profile ids of the approvers (duplicates ignored).
        principal:     Requesting caller; must be author-tier.
        due_date:      Optional ``date`` stamped on every new Signoff.

    Returns:
        ``{created, signoffCount, artifactId, signoffs: [{id, assigneeId}]}``
    """
    check_role(principal.role, REQUESTER_ROLES, "request sign-off")

    approvers = list(dict.fromkeys(a for a in (approver_ids or []) if a))
    if not approvers:
        raise ValidationError("At least one approver is required")

    artifact = db.session.get(Artifact, artifact_id)
    if not artifact:
        raise NotFoundError(resource="Artifact", resource_id=artifact_id)
    if artifact.status == "approved":
        raise ConflictError("Artifact is already approved")
    if artifact.status == "superseded":
        raise ConflictError("Artifact has been superseded by a newer version")

    latest = _current_round(artifact.id)
    if artifact.status == "pending_review" and latest:
        round_no = latest
        already = {
            row[0]
            for row in db.session.query(Signoff.assignee_id)
            .filter(Signoff.artifact_id == artifact.id, Signoff.round == round_no)
            .all()
        }
        approvers = [a for a in approvers if a not in already]
        if not approvers:
            raise ConflictError("Every approver already has a sign-off in the current round")
    else:
        round_no = latest + 1

    signoffs = []
    for assignee_id in approvers:
        signoff = Signoff(
            artifact_id=artifact.id,
            round=round_no,
            assignee_id=assignee_id,
            status="pending",
            due_date=due_date,
            created_by=principal.id,
        )
        db.session.add(signoff)
        signoffs.append(signoff)

    previous_status = artifact.status
    artifact.status = "pending_review"
    db.session.flush()

    NotificationService.broadcast(
        recipients=approvers,
        title="Signoff Request",
        body=f'You have been requested to review and sign off on "{artifact.title}"',
        type="signoff_request",
        priority="high",
        entity_type="artifact",
        entity_id=artifact.id,
        action_url=f"/artifacts/{artifact.id}/signoff",
    )
    write_audit(
        entity_type="artifact",
        entity_id=artifact.id,
        action="signoff.request",
        principal=principal,
        old={"status": previous_status},
        new={"status": "pending_review", "round": round_no, "approvers": approvers},
        ip_address=_get_client_ip(),
    )
    db.session.commit()

    logger.info(
        "Sign-off requested from %d approver(s)", len(signoffs),
        extra={"artifact_id": artifact.id, "user_id": principal.id, "action": "create_signoff_request"},
    )
    return {
        "created": True,
        "signoffCount": len(signoffs),
        "artifactId": artifact.id,
        "signoffs": [{"id": s.id, "assigneeId": s.assignee_id} for s in signoffs],
    }


def approve_signoff(signoff_id: str, principal, comments: str | None = None) -> dict:
    """Approve one Signoff and re-project the artifact status.

    Stores the SHA-256 of the artifact content together with the caller's
    IP and user agent so the decision can be proven later.
    """
    signoff, artifact = _load_decidable(signoff_id, principal)

    client_ip = _get_client_ip()
    previous = signoff.status
    signoff.status = "approved"
    signoff.decision_at = datetime.now(timezone.utc)
    signoff.comments = comments
    signoff.signature_hash = _content_hash(artifact.content)
    signoff.ip_address = client_ip
    signoff.user_agent = _get_user_agent()
    db.session.flush()

    artifact.status = project_artifact_status(_round_statuses(artifact.id, signoff.round))
    all_approved = artifact.status == "approved"

    write_audit(
        entity_type="signoff",
        entity_id=signoff.id,
        action="signoff.approve",
        principal=principal,
        old={"status": previous},
        new={"status": "approved", "comments": comments, "artifact_status": artifact.status},
        ip_address=client_ip,
    )
    db.session.commit()

    logger.info(
        "Sign-off approved",
        extra={
            "signoff_id": signoff.id,
            "artifact_id": artifact.id,
            "user_id": principal.id,
            "action": "approve_artifact",
        },
    )
    return {
        "approved": True,
        "signoffId": signoff.id,
        "artifactStatus": artifact.status,
        "allApproved": all_approved,
    }


def reject_signoff(signoff_id: str, principal, comments: str | None) -> dict:
    """Reject one Signoff; the artifact is rejected immediately."""
    text = _require_comments(comments, "comments are required for rejection")
    signoff, artifact = _load_decidable(signoff_id, principal)

    client_ip = _get_client_ip()
    previous = signoff.status
    signoff.status = "rejected"
    signoff.decision_at = datetime.now(timezone.utc)
    signoff.comments = text
    signoff.ip_address = client_ip
    signoff.user_agent = _get_user_agent()
    artifact.status = "rejected"

    write_audit(
        entity_type="signoff",
        entity_id=signoff.id,
        action="signoff.reject",
        principal=principal,
        old={"status": previous},
        new={"status": "rejected", "comments": text},
        ip_address=client_ip,
    )
    db.session.commit()

    logger.info(
        "Sign-off rejected",
        extra={
            "signoff_id": signoff.id,
            "artifact_id": artifact.id,
            "user_id": principal.id,
            "action": "reject_artifact",
        },
    )
    return {"rejected": True, "signoffId": signoff.id, "artifactStatus": "rejected"}


def request_changes(signoff_id: str, comments: str | None, principal) -> dict:
    """Send the artifact back to draft with the reviewer's comments.

    The Signoff keeps its status; revising and re-requesting sign-off starts
    a new round.
    """
    text = _require_comments(comments, "comments are required when requesting changes")
    signoff, artifact = _load_decidable(signoff_id, principal)

    previous_artifact_status = artifact.status
    signoff.comments = text
    artifact.status = "draft"

    write_audit(
        entity_type="signoff",
        entity_id=signoff.id,
        action="signoff.request_changes",
        principal=principal,
        old={"artifact_status": previous_artifact_status},
        new={"artifact_status": "draft", "comments": text},
        ip_address=_get_client_ip(),
    )
    db.session.commit()

    logger.info(
        "Changes requested on artifact",
        extra={"signoff_id": signoff.id, "artifact_id": artifact.id, "user_id": principal.id},
    )
    return {"changesRequested": True, "signoffId": signoff.id, "artifactStatus": "draft"}


def delegate_signoff(signoff_id: str, principal, delegate_to_id: str, comments: str | None = None) -> dict:
    """Hand a pending Signoff over to another profile.

    Only the original assignee may delegate, and only once.
    """
    if not delegate_to_id:
        raise ValidationError("delegateToId is required")
    signoff = _load_signoff(signoff_id)

    if signoff.assignee_id != principal.id:
        raise AuthorizationError("Only the assignee can delegate this signoff")
    if signoff.status != "pending":
        raise ConflictError(
            f"Signoff is not in pending status (status: {signoff.status})",
            details={"status": signoff.status},
        )
    if delegate_to_id == principal.id:
        raise ValidationError("Cannot delegate a signoff to yourself")

    signoff.status = "delegated"
    signoff.delegated_to_id = delegate_to_id
    signoff.comments = comments or f"Delegated by {principal.display_name}"

    artifact = signoff.artifact
    NotificationService.create(
        user_id=delegate_to_id,
        title="Signoff Delegated",
        body=f'{principal.display_name} delegated the sign-off on "{artifact.title}" to you',
        type="signoff_delegated",
        priority="high",
        entity_type="signoff",
        entity_id=signoff.id,
        action_url=f"/artifacts/{artifact.id}/signoff",
    )
    write_audit(
        entity_type="signoff",
        entity_id=signoff.id,
        action="signoff.delegate",
        principal=principal,
        old={"status": "pending"},
        new={"status": "delegated", "delegated_to_id": delegate_to_id},
        ip_address=_get_client_ip(),
    )
    db.session.commit()

    logger.info(
        "Sign-off delegated",
        extra={"signoff_id": signoff.id, "user_id": principal.id, "action": "delegate_signoff"},
    )
    return {"delegated": True, "signoffId": signoff.id, "delegatedTo": delegate_to_id}
