"""
In-app notifications
Targeted or role-broadcast notices for the bell, with per-user read state
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import User
from ...models_notification import Notification, NotificationTarget
from ...shared.timeutils import clinic_now
from .repository import NotificationRepository

logger = logging.getLogger(__name__)

INBOX_LIMIT = 20


def notify_users(
    db: Session,
    users: list[User],
    type: str,
    title: str,
    body: Optional[str] = None,
    severity: str = "info",
    data: Optional[dict] = None,
    created_by: Optional[int] = None,
) -> Notification:
    """Targeted notification for the given users. Does not commit."""
    notification = Notification(
        type=type,
        title=title,
        body=body,
        severity=severity,
        scope="targeted",
        effective_from=clinic_now(),
        data=data,
        created_by=created_by,
    )
    notification.targets = [NotificationTarget(user_id=u.id, user_email=u.email) for u in users]
    db.add(notification)
    return notification


def notify_roles(
    db: Session,
    roles: Optional[list[str]],
    type: str,
    title: str,
    body: Optional[str] = None,
    severity: str = "info",
    data: Optional[dict] = None,
) -> Notification:
    """Broadcast to every user with one of the roles (all roles when None). Does not commit."""
    notification = Notification(
        type=type,
        title=title,
        body=body,
        severity=severity,
        scope="broadcast",
        audience_roles=roles,
        effective_from=clinic_now(),
        data=data,
    )
    db.add(notification)
    return notification


def serialize_notification(notification: Notification, target: Optional[NotificationTarget]) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "body": notification.body,
        "severity": notification.severity,
        "data": notification.data or {},
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "read_at": target.read_at.isoformat() if target and target.read_at else None,
    }


class InboxService:
    """Notification bell for the signed-in user"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = NotificationRepository()

    def _visible(self, user: User) -> list[Notification]:
        candidates = self.repo.inbox_candidates(self.db, user.id, clinic_now())
        return [
            n
            for n in candidates
            if n.scope == "targeted" or not n.audience_roles or user.role in n.audience_roles
        ]

    def mine(self, user: User, limit: int = INBOX_LIMIT) -> list[dict]:
        notifications = self._visible(user)[:limit]
        targets = self.repo.targets_for(self.db, user.id, [n.id for n in notifications])
        return [serialize_notification(n, targets.get(n.id)) for n in notifications]

    def unread_count(self, user: User) -> dict:
        notifications = self._visible(user)
        targets = self.repo.targets_for(self.db, user.id, [n.id for n in notifications])
        unread = sum(1 for n in notifications if n.id not in targets or targets[n.id].read_at is None)
        return {"unread": unread}

    def mark_all_read(self, user: User) -> dict:
        notifications = self._visible(user)
        targets = self.repo.targets_for(self.db, user.id, [n.id for n in notifications])
        now = clinic_now()

        marked = 0
        for notification in notifications:
            target = targets.get(notification.id)
            if target is None:
                # Broadcasts get a target row the first time they are read
                self.db.add(
                    NotificationTarget(
                        notification_id=notification.id, user_id=user.id, user_email=user.email, read_at=now
                    )
                )
                marked += 1
            elif target.read_at is None:
                target.read_at = now
                marked += 1

        self.db.commit()
        if marked:
            logger.info(f"User #{user.id} marked {marked} notification(s) as read")
        return {"message": "All notifications marked as read.", "marked": marked}
