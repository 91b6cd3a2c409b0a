"""GitHub sync mapping model.

One row per mirrored GitHub entity. The row is the idempotency anchor for
repeated syncs in both directions, so both natural keys are enforced as
unique constraints: a concurrent check-then-insert loses with an
IntegrityError instead of producing a duplicate mapping.
"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)

from pmo_platform.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _uuid():
    return str(uuid.uuid4())


ENTITY_ISSUE = "issue"


class GitHubSync(db.Model):
    """Durable mapping between a ticket and its GitHub counterpart."""

    __tablename__ = "github_syncs"
    __table_args__ = (
        UniqueConstraint(
            "github_repo_id", "github_entity_type", "github_entity_id",
            name="uq_github_sync_external",
        ),
        UniqueConstraint("ticket_id", "github_entity_type", name="uq_github_sync_ticket"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    github_repo_id = Column(BigInteger, nullable=False)
    github_entity_type = Column(String(30), nullable=False, default=ENTITY_ISSUE)
    github_entity_id = Column(BigInteger, nullable=False)  # issue number
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True)
    direction = Column(String(20), default="bilateral")  # inbound | outbound | bilateral
    last_synced_at = Column(DateTime(timezone=True), default=_utcnow)
    sync_status = Column(String(20), default="synced")  # synced | disconnected | error
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def mark_synced(self):
        self.last_synced_at = _utcnow()
        self.sync_status = "synced"
        self.error_message = None

    def __repr__(self):
        return (
            f"<GitHubSync repo={self.github_repo_id} {self.github_entity_type}"
            f"#{self.github_entity_id} ticket={self.ticket_id} [{self.sync_status}]>"
        )
