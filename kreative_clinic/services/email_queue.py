"""
Email queue retry
Delivers queued email_logs rows through Resend
"""

import logging

from sqlalchemy.orm import Session

from ..domain.notifications.repository import NotificationRepository
from ..email_service import send_queued

logger = logging.getLogger(__name__)

BATCH_LIMIT = 20


def process_email_queue(db: Session, limit: int = BATCH_LIMIT) -> dict:
    """
    Should be run as a scheduled job (every 5 minutes)

    Returns:
        dict: {"processed": count, "sent": count, "failed": count}
    """
    summary = {"processed": 0, "sent": 0, "failed": 0}

    try:
        for entry in NotificationRepository.queued_emails(db, limit):
            summary["processed"] += 1
            if send_queued(db, entry):
                summary["sent"] += 1
            elif entry.status == "failed":
                summary["failed"] += 1

        if summary["processed"]:
            logger.info(f"📊 Email queue summary: {summary}")
        return summary

    except Exception as e:
        logger.error(f"❌ Error processing email queue: {e}")
        db.rollback()
        raise
