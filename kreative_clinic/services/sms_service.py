"""
AWS SNS SMS Service
Every attempt is written to notification_logs first, then gated by
seeding mode, the sandbox whitelist and a duplicate guard before SNS publish
"""

import logging
from datetime import timedelta
from typing import Optional

import boto3
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import config
from ..models import Appointment
from ..models_notification import NotificationLog, SmsWhitelist
from ..shared.timeutils import clinic_now
from ..shared.validators import normalize_ph_phone

logger = logging.getLogger(__name__)

DUPLICATE_WINDOW_MINUTES = 5
DUPLICATE_PREFIX_LENGTH = 50
MAX_SENDER_ID_LENGTH = 11


def get_sns_client():
    return boto3.client(
        "sns",
        region_name=config.AWS_REGION,
        aws_access_key_id=config.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY,
    )


def is_whitelisted(db: Session, to: str) -> bool:
    if to in config.SMS_WHITELIST:
        return True
    return db.query(SmsWhitelist).filter(SmsWhitelist.phone_e164 == to).first() is not None


def is_duplicate(db: Session, log: NotificationLog) -> bool:
    """Same recipient got the same (or a same-prefix) message within the window"""
    since = clinic_now() - timedelta(minutes=DUPLICATE_WINDOW_MINUTES)
    prefix = log.message[:DUPLICATE_PREFIX_LENGTH]
    return (
        db.query(NotificationLog)
        .filter(
            NotificationLog.channel == "sms",
            NotificationLog.to == log.to,
            NotificationLog.status.in_(["sent", "pending"]),
            NotificationLog.created_at >= since,
            NotificationLog.id != log.id,
            or_(NotificationLog.message == log.message, NotificationLog.message.startswith(prefix, autoescape=True)),
        )
        .first()
        is not None
    )


def send_sms(
    db: Session,
    to: Optional[str],
    message: str,
    subject: str = "Notification",
    meta: Optional[dict] = None,
) -> NotificationLog:
    """
    Log and (when allowed) publish an SMS

    Args:
        db: Database session
        to: Recipient number, 09XXXXXXXXX or E.164
        message: SMS body
        subject: Short label stored in the log meta
        meta: Extra context for the log row

    Returns:
        The NotificationLog row with its final status
    """
    recipient = normalize_ph_phone(to) if to else None
    log = NotificationLog(
        channel="sms",
        to=recipient or "N/A",
        message=message,
        status="pending",
        meta={"subject": subject, **(meta or {})},
        created_at=clinic_now(),
    )
    db.add(log)
    db.commit()
    db.refresh(log)

    if config.DB_SEEDING:
        return _finish(db, log, "seeding")

    if not config.SMS_ENABLED or not recipient or not is_whitelisted(db, recipient):
        return _finish(db, log, "blocked_sandbox")

    if is_duplicate(db, log):
        logger.info(f"⚠️ SMS duplicate prevented: {subject} to {recipient}")
        return _finish(db, log, "duplicate")

    sender_id = config.SMS_SENDER_ID
    if sender_id and len(sender_id) > MAX_SENDER_ID_LENGTH:
        sender_id = sender_id[:MAX_SENDER_ID_LENGTH]
        logger.warning(f"⚠️ Sender ID truncated to {MAX_SENDER_ID_LENGTH} characters: {sender_id}")

    attributes = {"AWS.SNS.SMS.SMSType": {"DataType": "String", "StringValue": config.SMS_TYPE}}
    if sender_id:
        attributes["AWS.SNS.SMS.SenderID"] = {"DataType": "String", "StringValue": sender_id}

    try:
        logger.info(f"🚀 Publishing SMS to {recipient}")
        response = get_sns_client().publish(
            PhoneNumber=recipient,
            Message=message,
            MessageAttributes=attributes,
        )
        log.provider_message_id = response.get("MessageId")
        logger.info(f"✅ SMS sent to {recipient}")
        return _finish(db, log, "sent")
    except Exception as e:
        log.error = str(e)
        logger.error(f"❌ SMS failed to {recipient}: {e}")
        return _finish(db, log, "failed")


def _finish(db: Session, log: NotificationLog, status: str) -> NotificationLog:
    log.status = status
    db.commit()
    db.refresh(log)
    if status in ("seeding", "blocked_sandbox"):
        logger.info(f"SMS {status}: {log.meta.get('subject')} to {log.to}")
    return log


# ============================================================================
# APPOINTMENT REMINDERS
# ============================================================================


def build_reminder_message(appointment: Appointment, custom: Optional[str] = None, edited: bool = False) -> str:
    """Default reminder text always carries the reference code"""
    if edited and custom and custom.strip():
        return custom

    patient = appointment.patient
    name = (patient.user.name if patient and patient.user else None) or "Patient"
    service = appointment.service.name if appointment.service else "your service"
    return (
        f"Hello {name}, this is a reminder for your dental appointment on "
        f"{appointment.date.isoformat()} at {appointment.time_slot} for {service}. "
        f"Ref: {appointment.reference_code or 'N/A'}. Please arrive on time. - {config.CLINIC_NAME}"
    )


def reminder_recipient(appointment: Appointment) -> Optional[str]:
    patient = appointment.patient
    if not patient:
        return None
    if patient.user and patient.user.contact_number:
        return patient.user.contact_number
    return patient.contact_number
