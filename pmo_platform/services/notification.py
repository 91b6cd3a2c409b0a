"""
PMO Platform
Notification Service.

Creates in-app notifications for workflow events. Writes only ``flush``;
the calling workflow service owns the commit so the notification lands in
the same transaction as the event that caused it.
"""

from pmo_platform.models import db
from pmo_platform.models.notification import NOTIFICATION_TYPES, Notification


def _check_type(type):
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")


class NotificationService:
    """Stateless service class for notification operations."""

    @staticmethod
    def create(*, user_id, title, body="", type="system", priority="medium",
               entity_type="", entity_id=None, action_url=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (flushed, not committed).
        """
        _check_type(type)
        notif = Notification(
            user_id=user_id,
            title=title,
            body=body,
            type=type,
            priority=priority,
            entity_type=entity_type,
            entity_id=entity_id,
            action_url=action_url,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def broadcast(*, recipients, title, body="", type="system", priority="medium",
                  entity_type="", entity_id=None, action_url=None):
        """
        Send the same notification to every recipient id.

        Returns:
            List of created Notification instances.
        """
        _check_type(type)
        notifications = []
        for user_id in recipients:
            notif = Notification(
                user_id=user_id,
                title=title,
                body=body,
                type=type,
                priority=priority,
                entity_type=entity_type,
                entity_id=entity_id,
                action_url=action_url,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.flush()
        return notifications
