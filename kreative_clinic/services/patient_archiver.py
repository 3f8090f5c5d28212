"""
Patient archiver
Archives patient accounts with no completed visit in PATIENT_ARCHIVE_YEARS
"""

import logging

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ..config import PATIENT_ARCHIVE_YEARS
from ..models import Patient, User
from ..models_visit import PatientVisit
from ..shared.timeutils import clinic_now

logger = logging.getLogger(__name__)


def archive_inactive_patients(db: Session, dry_run: bool = False) -> dict:
    """
    Archive patient accounts whose last completed visit (or, without any
    visit, account creation) is at or before the cutoff.
    Should be run as a scheduled job (daily)

    Args:
        db: Database session
        dry_run: Count candidates without writing

    Returns:
        dict with the cutoff and checked/archived counts
    """
    now = clinic_now()
    cutoff = (now - relativedelta(years=PATIENT_ARCHIVE_YEARS)).replace(hour=0, minute=0, second=0, microsecond=0)

    logger.info(f"🚀 Archiving patients inactive since {cutoff.date()} (dry_run={dry_run})")

    summary = {"cutoff": cutoff.isoformat(), "checked": 0, "archived": 0, "dry_run": dry_run}

    try:
        candidates = (
            db.query(Patient)
            .join(User, Patient.user_id == User.id)
            .filter(Patient.archived_at.is_(None), User.role == "patient")
            .order_by(Patient.id.asc())
            .all()
        )

        for patient in candidates:
            summary["checked"] += 1

            last_visit = (
                db.query(PatientVisit.visit_date)
                .filter(PatientVisit.patient_id == patient.id, PatientVisit.status == "completed")
                .order_by(PatientVisit.visit_date.desc())
                .first()
            )
            if last_visit:
                reference = last_visit[0]
                reason = f"No completed visits in the last {PATIENT_ARCHIVE_YEARS} years"
            else:
                reference = patient.created_at.date() if patient.created_at else None
                reason = f"No visits recorded since account creation (>{PATIENT_ARCHIVE_YEARS} years)"

            if reference is None or reference > cutoff.date():
                continue

            summary["archived"] += 1
            if dry_run:
                continue

            patient.archived_at = now
            patient.archived_by = None
            patient.archived_reason = reason
            logger.info(f"🗑️ Archived patient #{patient.id}: {reason}")

        if not dry_run:
            db.commit()

        logger.info(f"📊 Patient archive: checked {summary['checked']}, archived {summary['archived']}")
        return summary

    except Exception as e:
        logger.error(f"❌ Patient archive failed: {e}")
        db.rollback()
        raise
