"""Ticket model — internal unit of work, optionally mirrored to a GitHub issue."""

import uuid
from datetime import datetime, timezone

from pmo_platform.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _uuid():
    return str(uuid.uuid4())


class Ticket(db.Model):
    """Work item inside a project."""

    __tablename__ = "tickets"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="open")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    labels = db.Column(db.JSON, default=list)
    assignee_id = db.Column(db.String(36), nullable=True, index=True)
    reporter_id = db.Column(db.String(36), nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    github_issue_number = db.Column(db.Integer, nullable=True)
    github_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", backref=db.backref("tickets", lazy="dynamic"))

    def __repr__(self):
        return f"<Ticket {self.id} [{self.status}/{self.priority}]>"
