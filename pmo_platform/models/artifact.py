"""
Artifact & Signoff models — multi-party approval of project documents.

An artifact collects one Signoff per requested approver. Signoffs are grouped
in rounds: every time sign-off is requested for an artifact that is not
already awaiting review, a new round starts, and only the current round's
Signoffs decide the artifact status. Earlier rounds stay untouched as the
approval trail.
"""

import uuid
from datetime import datetime, timezone

from pmo_platform.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _uuid():
    return str(uuid.uuid4())


# ── Constants ─────────────────────────────────────────────────────────────────

# A delegated Signoff is still undecided: the delegate casts the decision.
OPEN_SIGNOFF_STATUSES = frozenset({"pending", "delegated"})


class Artifact(db.Model):
    """Versioned project document subject to approval."""

    __tablename__ = "artifacts"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False, default="other")
    title = db.Column(db.String(300), nullable=False)
    content = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | pending_review | approved | rejected | superseded",
    )
    version = db.Column(db.Integer, nullable=False, default=1)
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    signoffs = db.relationship(
        "Signoff", backref="artifact", cascade="all, delete-orphan", lazy="dynamic",
    )

    def __repr__(self):
        return f"<Artifact {self.id} v{self.version} [{self.status}]>"


class Signoff(db.Model):
    """
    One approver's decision record against one artifact.

    Business rules (enforced in signoff_service):
    - approve / reject only while status is pending or delegated.
    - Only the assignee or the delegate may decide.
    - signature_hash is the SHA-256 of the artifact content at approval time,
      so a later dispute can prove what exactly was approved.
    """

    __tablename__ = "signoffs"
    __table_args__ = (
        db.Index("ix_signoff_artifact_round", "artifact_id", "round"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    artifact_id = db.Column(
        db.String(36), db.ForeignKey("artifacts.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    round = db.Column(db.Integer, nullable=False, default=1)
    assignee_id = db.Column(db.String(36), nullable=False, index=True)
    delegated_to_id = db.Column(db.String(36), nullable=True, index=True)
    status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | approved | rejected | delegated",
    )
    comments = db.Column(db.Text, nullable=True)
    decision_at = db.Column(db.DateTime(timezone=True), nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    # Non-repudiation fields, captured on approval
    signature_hash = db.Column(db.String(64), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)

    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def is_decider(self, user_id: str) -> bool:
        """Return True if *user_id* may approve or reject this Signoff."""
        return user_id is not None and user_id in (self.assignee_id, self.delegated_to_id)

    def __repr__(self):
        return f"<Signoff {self.id} r{self.round} {self.assignee_id} [{self.status}]>"
