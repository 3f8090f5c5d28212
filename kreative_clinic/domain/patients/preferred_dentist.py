"""Preferred dentist lookup from a patient's completed history"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, DentistSchedule
from ...models_visit import PatientVisit

logger = logging.getLogger(__name__)


def resolve_preferred_dentist(db: Session, patient_id: Optional[int]) -> Optional[DentistSchedule]:
    """
    The dentist on the patient's most recent completed visit or appointment.
    Dentists whose schedule is no longer active are ignored.
    """
    if not patient_id:
        return None

    visit = (
        db.query(PatientVisit)
        .filter(
            PatientVisit.patient_id == patient_id,
            PatientVisit.status == "completed",
            PatientVisit.dentist_schedule_id.isnot(None),
        )
        .order_by(PatientVisit.visit_date.desc(), PatientVisit.id.desc())
        .first()
    )
    appointment = (
        db.query(Appointment)
        .filter(
            Appointment.patient_id == patient_id,
            Appointment.status == "completed",
            Appointment.dentist_schedule_id.isnot(None),
        )
        .order_by(Appointment.date.desc(), Appointment.id.desc())
        .first()
    )

    candidates = []
    if visit:
        candidates.append((visit.visit_date, visit.dentist_schedule_id))
    if appointment:
        candidates.append((appointment.date, appointment.dentist_schedule_id))
    if not candidates:
        return None

    _, dentist_id = max(candidates, key=lambda pair: pair[0])
    dentist = db.query(DentistSchedule).filter(DentistSchedule.id == dentist_id).first()
    if not dentist or dentist.status != "active":
        return None
    return dentist


def dentist_summary(dentist: Optional[DentistSchedule]) -> Optional[dict]:
    if not dentist:
        return None
    return {"id": dentist.id, "code": dentist.dentist_code, "name": dentist.dentist_name}
