"""
Patient manager service
No-show tracking, warnings and booking blocks per patient
"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...config import CLINIC_NAME, NO_SHOW_BLOCK_THRESHOLD, NO_SHOW_WARNING_THRESHOLD
from ...email_service import queue_email
from ...email_templates import no_show_warning_template
from ...models import Appointment, Patient, PatientManager, User
from ...services.sms_service import send_sms
from ...shared.pagination import clamp_per_page, paginate
from ...shared.timeutils import clinic_now
from .repository import PatientRepository
from .service import patient_profile

logger = logging.getLogger(__name__)

BLOCKED_MESSAGE = (
    "Your account has been restricted from booking appointments due to repeated no-shows. "
    "Please contact the clinic."
)
WARNING_MESSAGE = (
    "You have missed multiple appointments. Further no-shows may restrict your booking privileges. "
    "Online payment (Maya) is required for new bookings."
)
DEFAULT_WARNING_TEXT = (
    "We noticed you missed {count} appointment(s). Please cancel in advance if you cannot make it. "
    "Further no-shows may restrict your booking privileges."
)


def serialize_manager(manager: PatientManager) -> dict:
    patient = manager.patient
    return {
        "id": manager.patient_id,
        "manager_id": manager.id,
        "patient_id": manager.patient_id,
        "patient_name": f"{patient.first_name} {patient.last_name}".strip() if patient else None,
        "contact_number": patient.contact_number if patient else None,
        "email": patient.user.email if patient and patient.user else None,
        "no_show_count": manager.no_show_count,
        "warning_count": manager.warning_count,
        "block_status": manager.block_status,
        "block_type": manager.block_type,
        "block_reason": manager.block_reason,
        "blocked_at": manager.blocked_at.isoformat() if manager.blocked_at else None,
        "last_no_show_at": manager.last_no_show_at.isoformat() if manager.last_no_show_at else None,
        "last_warning_sent_at": manager.last_warning_sent_at.isoformat() if manager.last_warning_sent_at else None,
        "admin_notes": manager.admin_notes,
    }


def serialize_no_show(appointment: Appointment) -> dict:
    return {
        "id": appointment.id,
        "date": appointment.date.isoformat(),
        "time_slot": appointment.time_slot,
        "service": appointment.service.name if appointment.service else None,
        "reference_code": appointment.reference_code,
        "dentist": appointment.dentist.dentist_name if appointment.dentist else None,
    }


def record_no_show(db: Session, patient: Patient) -> PatientManager:
    """
    Count a missed appointment and escalate the patient's status.
    Does not commit; the caller owns the transaction.
    """
    manager = PatientRepository.get_or_create_manager(db, patient.id)
    manager.no_show_count = (manager.no_show_count or 0) + 1
    manager.last_no_show_at = clinic_now()

    if manager.no_show_count >= NO_SHOW_BLOCK_THRESHOLD and manager.block_status != "blocked":
        manager.block_status = "blocked"
        manager.block_type = "account"
        manager.block_reason = f"Automatically blocked after {manager.no_show_count} no-shows"
        manager.blocked_at = clinic_now()
        logger.warning(f"⚠️ Patient #{patient.id} auto-blocked ({manager.no_show_count} no-shows)")
    elif manager.no_show_count >= NO_SHOW_WARNING_THRESHOLD and manager.block_status == "active":
        manager.block_status = "warning"
        logger.warning(f"⚠️ Patient #{patient.id} placed under warning ({manager.no_show_count} no-shows)")

    return manager


def booking_restrictions(db: Session, patient_id: Optional[int]) -> dict:
    """Current booking status of a patient as shown to the patient"""
    manager = PatientRepository.get_manager(db, patient_id) if patient_id else None
    status = manager.block_status if manager else "active"

    result = {
        "blocked": status == "blocked",
        "warning": status == "warning",
        "block_status": status,
        "no_show_count": manager.no_show_count if manager else 0,
        "allowed_payment_methods": ["cash", "maya", "hmo"],
        "message": None,
    }
    if status == "blocked":
        result["allowed_payment_methods"] = []
        result["message"] = BLOCKED_MESSAGE
    elif status == "warning":
        result["allowed_payment_methods"] = ["maya"]
        result["message"] = WARNING_MESSAGE
    return result


class PatientManagerService:
    """Admin actions on no-show tracking records"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PatientRepository()

    def list_managers(
        self,
        status: Optional[str] = None,
        min_no_shows: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> dict:
        query = self.repo.manager_query(self.db, status, min_no_shows, search)
        return {"success": True, "data": paginate(query, page, clamp_per_page(per_page), serialize_manager)}

    def statistics(self) -> dict:
        with_no_shows = self.db.query(func.count(PatientManager.id)).filter(PatientManager.no_show_count > 0).scalar()
        under_warning = (
            self.db.query(func.count(PatientManager.id)).filter(PatientManager.block_status == "warning").scalar()
        )
        blocked = self.db.query(func.count(PatientManager.id)).filter(PatientManager.block_status == "blocked").scalar()
        total_no_shows = self.db.query(func.coalesce(func.sum(PatientManager.no_show_count), 0)).scalar()

        return {
            "success": True,
            "data": {
                "total_patients_with_no_shows": with_no_shows or 0,
                "patients_under_warning": under_warning or 0,
                "blocked_patients": blocked or 0,
                "total_no_shows": int(total_no_shows or 0),
                "average_no_shows_per_patient": round(total_no_shows / with_no_shows, 2) if with_no_shows else 0,
            },
        }

    def show(self, patient_id: int) -> dict:
        manager = self._get_manager(patient_id)
        no_shows = self.repo.no_shows_query(self.db, patient_id).limit(20).all()
        data = serialize_manager(manager)
        data["patient"] = patient_profile(manager.patient)
        data["recent_no_shows"] = [serialize_no_show(a) for a in no_shows]
        return {"success": True, "data": data}

    def no_show_history(self, patient_id: int, page: int, per_page: Optional[int]) -> dict:
        """Every no-show of the patient, newest first, with the current manager counters"""
        manager = self._get_manager(patient_id)
        history = paginate(
            self.repo.no_shows_query(self.db, patient_id), page, clamp_per_page(per_page, default=20), serialize_no_show
        )
        return {
            "success": True,
            "data": {
                "patient_id": patient_id,
                "no_show_count": manager.no_show_count,
                "warning_count": manager.warning_count,
                "block_status": manager.block_status,
                "last_no_show_at": manager.last_no_show_at.isoformat() if manager.last_no_show_at else None,
                "history": history,
            },
        }

    def send_warning(self, patient_id: int, message: Optional[str], admin: User) -> dict:
        manager = self._get_manager(patient_id)
        patient = manager.patient
        text = (message or "").strip() or DEFAULT_WARNING_TEXT.format(count=manager.no_show_count)

        phone = patient.user.contact_number if patient.user and patient.user.contact_number else patient.contact_number
        sms_log = send_sms(
            self.db,
            phone,
            f"{text} - {CLINIC_NAME}",
            subject="No-show warning",
            meta={"patient_id": patient.id, "sent_by": admin.id},
        )
        if patient.user and patient.user.email:
            queue_email(
                self.db,
                patient.user.email,
                "Missed Appointment Notice",
                no_show_warning_template(patient.first_name, manager.no_show_count, text),
            )

        manager.warning_count = (manager.warning_count or 0) + 1
        manager.last_warning_sent_at = clinic_now()
        manager.last_warning_message = text
        if manager.block_status == "active":
            manager.block_status = "warning"
        self._append_note(manager, admin, f"Warning sent: {text}")
        self.db.commit()
        self.db.refresh(manager)

        logger.info(f"📧 Warning sent to patient #{patient.id} (sms={sms_log.status})")
        return {"success": True, "message": "Warning sent to patient.", "data": serialize_manager(manager)}

    def block(self, patient_id: int, reason: str, block_type: str, admin: User) -> dict:
        manager = self._get_manager(patient_id)
        if manager.block_status == "blocked":
            raise HTTPException(status_code=422, detail="Patient is already blocked.")

        manager.block_status = "blocked"
        manager.block_type = block_type
        manager.block_reason = reason
        manager.blocked_at = clinic_now()
        manager.blocked_by = admin.id
        self._append_note(manager, admin, f"Blocked ({block_type}): {reason}")
        self.db.commit()
        self.db.refresh(manager)

        logger.warning(f"⚠️ Patient #{patient_id} blocked by admin #{admin.id}")
        return {"success": True, "message": "Patient blocked successfully.", "data": serialize_manager(manager)}

    def unblock(self, patient_id: int, reason: Optional[str], admin: User) -> dict:
        manager = self._get_manager(patient_id)
        if manager.block_status != "blocked":
            raise HTTPException(status_code=422, detail="Patient is not blocked.")

        manager.block_status = "warning" if manager.no_show_count >= NO_SHOW_WARNING_THRESHOLD else "active"
        manager.block_type = None
        manager.block_reason = None
        manager.blocked_at = None
        manager.blocked_by = None
        self._append_note(manager, admin, f"Unblocked: {reason or 'no reason given'}")
        self.db.commit()
        self.db.refresh(manager)

        logger.info(f"✅ Patient #{patient_id} unblocked by admin #{admin.id}")
        return {"success": True, "message": "Patient unblocked successfully.", "data": serialize_manager(manager)}

    def add_note(self, patient_id: int, note: str, admin: User) -> dict:
        manager = self._get_manager(patient_id)
        self._append_note(manager, admin, note)
        self.db.commit()
        self.db.refresh(manager)
        return {"success": True, "message": "Note added successfully.", "data": serialize_manager(manager)}

    def reset_no_shows(self, patient_id: int, admin: User) -> dict:
        manager = self._get_manager(patient_id)
        previous = manager.no_show_count
        manager.no_show_count = 0
        manager.warning_count = 0
        manager.block_status = "active"
        manager.block_type = None
        manager.block_reason = None
        manager.blocked_at = None
        manager.blocked_by = None
        self._append_note(manager, admin, f"No-show count reset (was {previous})")
        self.db.commit()
        self.db.refresh(manager)

        logger.info(f"🔧 No-shows reset for patient #{patient_id} by admin #{admin.id}")
        return {"success": True, "message": "No-show count reset successfully.", "data": serialize_manager(manager)}

    def _get_manager(self, patient_id: int) -> PatientManager:
        patient = self.repo.get(self.db, patient_id)
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")
        return self.repo.get_or_create_manager(self.db, patient.id)

    @staticmethod
    def _append_note(manager: PatientManager, admin: User, note: str) -> None:
        entry = f"[{clinic_now().strftime('%Y-%m-%d %H:%M')}] {admin.name}: {note}"
        manager.admin_notes = f"{manager.admin_notes}\n{entry}" if manager.admin_notes else entry
