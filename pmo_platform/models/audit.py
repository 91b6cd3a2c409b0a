"""
PMO Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for workflow events.
"""

import json
from datetime import UTC, datetime

from pmo_platform.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"project", "artifact", "signoff", "ticket", "profile"}

AUDIT_ACTIONS = {
    # Project lifecycle
    "project.transition",
    # Approval workflow
    "signoff.request",
    "signoff.approve",
    "signoff.reject",
    "signoff.request_changes",
    "signoff.delegate",
    # Tickets
    "ticket.assign",
    "ticket.merge_duplicate",
    # GitHub link
    "project.connect_repo",
    "project.disconnect_repo",
    "profile.github_token",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every workflow event.

    One row per action.  ``diff_json`` carries the old → new snapshot.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.String(36), nullable=True, index=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="project | artifact | signoff | ticket | …",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    # What happened and who did it
    action = db.Column(
        db.String(60), nullable=False,
        comment="project.transition | signoff.approve | …",
    )
    actor_id = db.Column(db.String(36), nullable=True)
    actor_email = db.Column(db.String(255), nullable=True)
    actor_role = db.Column(db.String(30), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    diff_json = db.Column(
        db.Text, default="{}",
        comment="JSON: {old: {...}, new: {...}}",
    )

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    principal=None,
    old: dict | None = None,
    new: dict | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    *principal* is the authenticated caller (``None`` for system actions such
    as webhook-driven syncs).

    Raises:
        ValueError: *entity_type* or *action* is not a known audit value.

    Returns the (flushed) AuditLog instance.
    """
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    log = AuditLog(
        org_id=getattr(principal, "org_id", None),
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_id=getattr(principal, "id", None),
        actor_email=getattr(principal, "email", None),
        actor_role=getattr(principal, "role", None),
        ip_address=ip_address,
        diff_json=json.dumps({"old": old or {}, "new": new or {}}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
