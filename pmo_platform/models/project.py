"""
PMO Platform
Project domain model.

Models:
    - Project: delivery engagement moving through the fixed lifecycle pipeline
    - ProjectMember: staff/client profile attached to a project with a role

The lifecycle rules are data, not branching code: adding a status means
editing PROJECT_TRANSITIONS / TRANSITION_ROLES only.
"""

import uuid
from datetime import datetime, timezone

from pmo_platform.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _uuid():
    return str(uuid.uuid4())


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = (
    "draft",
    "scoping",
    "sow_draft",
    "sow_review",
    "poc_phase",
    "development",
    "uat_phase",
    "sign_off",
    "completed",
    "cancelled",
)

# Forward pipeline, escape hatch to cancelled, rework edges back one step.
PROJECT_TRANSITIONS = {
    "draft":       ["scoping", "cancelled"],
    "scoping":     ["sow_draft", "cancelled"],
    "sow_draft":   ["sow_review", "cancelled"],
    "sow_review":  ["sow_draft", "poc_phase", "cancelled"],
    "poc_phase":   ["development", "cancelled"],
    "development": ["uat_phase", "cancelled"],
    "uat_phase":   ["development", "sign_off", "cancelled"],
    "sign_off":    ["uat_phase", "completed", "cancelled"],
    "completed":   [],
    "cancelled":   [],
}

# Roles required to move INTO a status. Targets absent here need no role.
TRANSITION_ROLES = {
    "sow_review":  ["project_manager", "org_admin", "super_admin"],
    "poc_phase":   ["client_stakeholder", "project_manager"],
    "development": ["client_stakeholder", "tech_lead"],
    "uat_phase":   ["project_manager", "tech_lead"],
    "sign_off":    ["client_stakeholder"],
    "completed":   ["client_stakeholder", "project_manager"],
}

TERMINAL_STATUSES = frozenset(s for s, nxt in PROJECT_TRANSITIONS.items() if not nxt)


def allowed_transitions(old_status):
    """Return the allowed successor statuses of *old_status* (empty if unknown)."""
    return list(PROJECT_TRANSITIONS.get(old_status, []))


def validate_project_transition(old_status, new_status):
    """Return True if Project status transition is valid."""
    return new_status in PROJECT_TRANSITIONS.get(old_status, [])


class Project(db.Model):
    """Client delivery project."""

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), nullable=True, index=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(30), nullable=False, default="draft",
        comment="draft | scoping | sow_draft | sow_review | poc_phase | development | "
                "uat_phase | sign_off | completed | cancelled",
    )
    start_date = db.Column(db.Date, nullable=True)
    target_end_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)

    # GitHub repository link (NULL when not connected)
    github_repo_url = db.Column(db.String(500), nullable=True)
    github_repo_id = db.Column(db.BigInteger, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    members = db.relationship(
        "ProjectMember", backref="project", cascade="all, delete-orphan", lazy="dynamic",
    )

    def __repr__(self):
        return f"<Project {self.code} [{self.status}]>"


class ProjectMember(db.Model):
    """Membership of a profile in a project."""

    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "profile_id", name="uq_project_member"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    profile_id = db.Column(db.String(36), nullable=False, index=True)
    role = db.Column(db.String(30), nullable=False, default="developer")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
