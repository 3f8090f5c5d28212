"""
Appointment reminder emails
Emails patients with an approved appointment tomorrow
"""

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from ..email_service import queue_email
from ..email_templates import appointment_reminder_template
from ..models import Appointment
from ..shared.timeutils import clinic_now, clinic_today

logger = logging.getLogger(__name__)


def send_appointment_reminders(db: Session) -> dict:
    """
    Queue a reminder email for every approved appointment tomorrow whose
    patient has a linked account.
    Appointments already emailed are stamped and skipped on later runs.
    Should be run as a scheduled job (daily, morning)

    Returns:
        dict: {"date": tomorrow, "queued": count, "skipped": count}
    """
    tomorrow = clinic_today() + timedelta(days=1)
    summary = {"date": tomorrow.isoformat(), "queued": 0, "skipped": 0}

    try:
        appointments = (
            db.query(Appointment)
            .filter(
                Appointment.status == "approved",
                Appointment.date == tomorrow,
                Appointment.email_reminded_at.is_(None),
            )
            .order_by(Appointment.time_slot.asc())
            .all()
        )

        for appointment in appointments:
            patient = appointment.patient
            user = patient.user if patient else None
            if not user or not user.email:
                summary["skipped"] += 1
                continue

            # Committed together with the queued email
            appointment.email_reminded_at = clinic_now()
            queue_email(
                db,
                user.email,
                "Your dental appointment tomorrow",
                appointment_reminder_template(
                    patient_name=patient.first_name,
                    service_name=appointment.service.name if appointment.service else "Dental service",
                    appointment_date=appointment.date.strftime("%B %d, %Y"),
                    time_slot=appointment.time_slot,
                    reference_code=appointment.reference_code or "-",
                ),
            )
            summary["queued"] += 1

        logger.info(f"📧 Appointment reminders for {tomorrow}: {summary['queued']} queued, {summary['skipped']} skipped")
        return summary

    except Exception as e:
        logger.error(f"❌ Error queueing appointment reminders: {e}")
        db.rollback()
        raise
