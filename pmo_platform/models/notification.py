"""
PMO Platform
Notification domain model.

Models:
    - Notification: in-app notification record (read_at set by the client app)
"""

from datetime import datetime, timezone

from pmo_platform.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"signoff_request", "signoff_delegated", "system"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    body = db.Column(db.Text, default="")
    type = db.Column(db.String(30), default="system")
    priority = db.Column(db.String(20), default="medium")

    # Link to source entity
    entity_type = db.Column(db.String(30), default="", comment="signoff/artifact/...")
    entity_id = db.Column(db.String(36), nullable=True)
    action_url = db.Column(db.String(500), nullable=True)

    # Read tracking
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
