"""Notification repository - whitelist, delivery logs, the email queue and the in-app inbox"""

from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Query, Session

from ...models_notification import EmailLog, Notification, NotificationLog, NotificationTarget, SmsWhitelist


class NotificationRepository:
    @staticmethod
    def whitelist(db: Session) -> list[SmsWhitelist]:
        return db.query(SmsWhitelist).order_by(SmsWhitelist.created_at.desc(), SmsWhitelist.id.desc()).all()

    @staticmethod
    def get_whitelist_entry(db: Session, entry_id: int) -> Optional[SmsWhitelist]:
        return db.query(SmsWhitelist).filter(SmsWhitelist.id == entry_id).first()

    @staticmethod
    def whitelist_by_phone(db: Session, phone: str) -> Optional[SmsWhitelist]:
        return db.query(SmsWhitelist).filter(SmsWhitelist.phone_e164 == phone).first()

    @staticmethod
    def logs_query(db: Session, status: Optional[str] = None, to: Optional[str] = None):
        query = db.query(NotificationLog)
        if status:
            query = query.filter(NotificationLog.status == status)
        if to:
            query = query.filter(NotificationLog.to.contains(to, autoescape=True))
        return query.order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())

    @staticmethod
    def queued_emails(db: Session, limit: int) -> list[EmailLog]:
        return (
            db.query(EmailLog)
            .filter(EmailLog.status == "queued")
            .order_by(EmailLog.created_at.asc(), EmailLog.id.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def emails_query(db: Session, status: Optional[str] = None, to: Optional[str] = None) -> Query:
        query = db.query(EmailLog)
        if status:
            query = query.filter(EmailLog.status == status)
        if to:
            query = query.filter(EmailLog.to.contains(to, autoescape=True))
        return query.order_by(EmailLog.created_at.desc(), EmailLog.id.desc())

    @staticmethod
    def email_counts(db: Session) -> dict[str, int]:
        return dict(db.query(EmailLog.status, func.count(EmailLog.id)).group_by(EmailLog.status).all())

    @staticmethod
    def failed_emails(db: Session) -> list[EmailLog]:
        return db.query(EmailLog).filter(EmailLog.status == "failed").order_by(EmailLog.id.asc()).all()

    @staticmethod
    def inbox_candidates(db: Session, user_id: int, now) -> list[Notification]:
        """Broadcasts plus notifications targeted at the user, within their effective window"""
        targeted = select(NotificationTarget.notification_id).where(NotificationTarget.user_id == user_id)
        return (
            db.query(Notification)
            .filter(
                or_(Notification.scope == "broadcast", Notification.id.in_(targeted)),
                or_(Notification.effective_from.is_(None), Notification.effective_from <= now),
                or_(Notification.effective_until.is_(None), Notification.effective_until >= now),
            )
            .order_by(Notification.id.desc())
            .all()
        )

    @staticmethod
    def targets_for(db: Session, user_id: int, notification_ids: list[int]) -> dict[int, NotificationTarget]:
        if not notification_ids:
            return {}
        rows = (
            db.query(NotificationTarget)
            .filter(NotificationTarget.user_id == user_id, NotificationTarget.notification_id.in_(notification_ids))
            .all()
        )
        return {target.notification_id: target for target in rows}
