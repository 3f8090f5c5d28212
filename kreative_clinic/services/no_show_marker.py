"""
No-show marker
Approved appointments whose start time plus the grace period has passed become no-shows
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import NO_SHOW_GRACE_MINUTES
from ..domain.patients.manager_service import record_no_show
from ..models import Appointment
from ..models_visit import PatientVisit
from ..shared.timeutils import clinic_now, parse_time_slot, to_minutes

logger = logging.getLogger(__name__)


def _is_past_grace(appointment: Appointment, now) -> bool:
    today = now.date()
    if appointment.date < today:
        return True
    if appointment.date > today:
        return False
    start, _ = parse_time_slot(appointment.time_slot)
    current = now.hour * 60 + now.minute
    return current >= to_minutes(start) + NO_SHOW_GRACE_MINUTES


def mark_no_shows(db: Session) -> dict:
    """
    Mark approved appointments as no_show once the grace period after their
    start has passed, and count them against the patient.
    Should be run as a scheduled job (every 15 minutes)

    Returns:
        dict: {"checked": timestamp, "marked": count, "blocked": count}
    """
    now = clinic_now()
    summary = {"checked": now.isoformat(), "marked": 0, "blocked": 0}

    try:
        checked_in = select(PatientVisit.appointment_id).where(PatientVisit.appointment_id.isnot(None))
        candidates = (
            db.query(Appointment)
            .filter(Appointment.status == "approved", Appointment.date <= now.date())
            .filter(~Appointment.id.in_(checked_in))
            .all()
        )

        for appointment in candidates:
            if not appointment.time_slot or not _is_past_grace(appointment, now):
                continue

            appointment.status = "no_show"
            manager = record_no_show(db, appointment.patient)
            summary["marked"] += 1
            if manager.block_status == "blocked":
                summary["blocked"] += 1
            logger.info(
                f"⚠️ Appointment #{appointment.id} marked no-show "
                f"(patient #{appointment.patient_id}, {manager.no_show_count} total)"
            )

        db.commit()
        logger.info(f"📊 No-show summary: {summary}")
        return summary

    except Exception as e:
        logger.error(f"❌ Error marking no-shows: {e}")
        db.rollback()
        raise
