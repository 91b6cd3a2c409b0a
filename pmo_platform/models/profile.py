"""
PMO Platform
Profile domain model.

Models:
    - Profile: platform user as seen by this service. Identity and role come
      from the JWT; the row only holds per-user settings such as the
      encrypted GitHub token.
"""

from datetime import datetime, timezone

from pmo_platform.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Profile(db.Model):
    """Per-user settings keyed by the identity provider's user id."""

    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True, comment="JWT subject")
    email = db.Column(db.String(255), nullable=True)
    full_name = db.Column(db.String(200), nullable=True)

    # Fernet ciphertext, see pmo_platform.utils.crypto
    github_token_encrypted = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def has_github_token(self) -> bool:
        return bool(self.github_token_encrypted)

    def __repr__(self):
        return f"<Profile {self.id}>"
