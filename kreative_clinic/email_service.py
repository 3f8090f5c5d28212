"""
Email Service using Resend
Outbound mail is queued in email_logs and delivered by the queue worker
"""

import logging
from typing import Optional

import resend
from mjml import mjml_to_html
from sqlalchemy.orm import Session

from .config import ADMIN_NOTIFICATION_EMAIL, EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .models_notification import EmailLog
from .shared.timeutils import clinic_now

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY

MAX_ATTEMPTS = 3


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


def send_email(to: str, subject: str, html: str, from_address: Optional[str] = None) -> dict:
    """Send one email through Resend; raises when the provider is missing or fails"""
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": [to],
                "subject": subject,
                "html": html,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {to}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


def queue_email(db: Session, to: str, subject: str, mjml_content: str) -> EmailLog:
    """Compile and store an email for delivery by the queue worker"""
    entry = EmailLog(
        to=to,
        subject=subject,
        html=compile_mjml_to_html(mjml_content),
        status="queued",
        attempts=0,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(f"📥 Email queued #{entry.id} to {to}: {subject}")
    return entry


def queue_admin_email(db: Session, subject: str, mjml_content: str) -> Optional[EmailLog]:
    if not ADMIN_NOTIFICATION_EMAIL:
        logger.warning(f"⚠️ ADMIN_NOTIFICATION_EMAIL not set, skipping admin email: {subject}")
        return None
    return queue_email(db, ADMIN_NOTIFICATION_EMAIL, subject, mjml_content)


def send_queued(db: Session, entry: EmailLog) -> bool:
    """Attempt delivery of one queued email; failed after MAX_ATTEMPTS"""
    entry.attempts = (entry.attempts or 0) + 1
    try:
        response = send_email(entry.to, entry.subject, entry.html)
        entry.status = "sent"
        entry.sent_at = clinic_now()
        entry.provider_message_id = response.get("id") if isinstance(response, dict) else None
        entry.last_error = None
        db.commit()
        return True
    except Exception as e:
        entry.last_error = str(e)
        if entry.attempts >= MAX_ATTEMPTS:
            entry.status = "failed"
            logger.error(f"❌ Email #{entry.id} failed after {entry.attempts} attempts")
        db.commit()
        return False
