"""Notification admin service - SMS sandbox whitelist, delivery logs and the email queue"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import send_queued
from ...models import User
from ...models_notification import EmailLog, NotificationLog, SmsWhitelist
from ...services.sms_service import send_sms
from ...shared.errors import FieldValidationError
from ...shared.pagination import clamp_per_page, paginate
from .repository import NotificationRepository

logger = logging.getLogger(__name__)


def serialize_log(log: NotificationLog) -> dict:
    return {
        "id": log.id,
        "channel": log.channel,
        "to": log.to,
        "message": log.message,
        "status": log.status,
        "provider_message_id": log.provider_message_id,
        "error": log.error,
        "meta": log.meta,
        "created_at": log.created_at.isoformat() if log.created_at else None,
    }


def serialize_email(entry: EmailLog) -> dict:
    return {
        "id": entry.id,
        "to": entry.to,
        "subject": entry.subject,
        "status": entry.status,
        "attempts": entry.attempts,
        "last_error": entry.last_error,
        "provider_message_id": entry.provider_message_id,
        "sent_at": entry.sent_at.isoformat() if entry.sent_at else None,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


class NotificationService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = NotificationRepository()

    def whitelist(self) -> list[SmsWhitelist]:
        return self.repo.whitelist(self.db)

    def add_to_whitelist(self, phone: str, label: Optional[str]) -> SmsWhitelist:
        if self.repo.whitelist_by_phone(self.db, phone):
            raise FieldValidationError.single("phone", "This number is already whitelisted.")

        entry = SmsWhitelist(phone_e164=phone, label=label)
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info(f"✅ Added {phone} to the SMS whitelist")
        return entry

    def remove_from_whitelist(self, entry_id: int) -> dict:
        entry = self.repo.get_whitelist_entry(self.db, entry_id)
        if not entry:
            raise HTTPException(status_code=404, detail="Whitelist entry not found")

        phone = entry.phone_e164
        self.db.delete(entry)
        self.db.commit()
        logger.info(f"🗑️ Removed {phone} from the SMS whitelist")
        return {"message": "Removed from whitelist."}

    def test_sms(self, to: str, message: str, user: User) -> dict:
        log = send_sms(self.db, to, message, subject="Test SMS", meta={"sent_by": user.id})
        return {"status": log.status, "log": serialize_log(log)}

    def logs(self, status: Optional[str], to: Optional[str], page: int, per_page: Optional[int]) -> dict:
        query = self.repo.logs_query(self.db, status, to)
        return paginate(query, page, clamp_per_page(per_page, default=20), serialize_log)

    def queued_emails(self, status: Optional[str], to: Optional[str], page: int, per_page: Optional[int]) -> dict:
        query = self.repo.emails_query(self.db, status, to)
        return paginate(query, page, clamp_per_page(per_page, default=20), serialize_email)

    def email_stats(self) -> dict:
        counts = self.repo.email_counts(self.db)
        stats = {status: counts.get(status, 0) for status in ("queued", "sent", "failed")}
        stats["total"] = sum(counts.values())
        return stats

    def retry_all_emails(self, user: User) -> dict:
        """Give failed emails a fresh set of attempts and try each once now"""
        failed = self.repo.failed_emails(self.db)
        for entry in failed:
            entry.status = "queued"
            entry.attempts = 0
        self.db.commit()

        # Whatever is still queued is picked up by the email queue job
        sent = sum(1 for entry in failed if send_queued(self.db, entry))
        logger.info(f"🔁 {len(failed)} failed email(s) re-queued by user #{user.id}, {sent} sent")
        return {"message": f"{len(failed)} failed email(s) re-queued.", "requeued": len(failed), "sent": sent}
