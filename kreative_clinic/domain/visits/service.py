"""Visit service - walk-ins, appointment check-in, dentist hand-off and completion"""

import logging
import string
from typing import Optional

from cryptography.fernet import InvalidToken
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import queue_email
from ...email_templates import visit_code_template
from ...models import DentistSchedule, Patient, Payment, Service, User
from ...models_visit import PatientVisit, VisitNote
from ...security_utils import decrypt_note, encrypt_note, generate_code, generate_visit_code, verify_password
from ...shared.errors import FieldValidationError
from ...shared.pagination import clamp_per_page, paginate
from ...shared.timeutils import clinic_now, clinic_today
from ..accounts.repository import UserRepository
from ..appointments.repository import AppointmentRepository
from ..catalog.pricing import calculate_total_price, get_price_for_date, sanitize_teeth, validate_teeth_format
from ..dentists.hours import active_on_date
from ..inventory.repository import InventoryRepository
from ..inventory.service import check_low_stock, consume_stock
from ..notifications.inbox import notify_users
from ..patients.repository import PatientRepository
from ..patients.service import patient_age
from ..receipts.builder import payment_receipt_data
from .repository import VisitRepository
from .schemas import CompleteVisitRequest, DentistNotesRequest, MedicalHistoryRequest, UpdateVisitPatientRequest

logger = logging.getLogger(__name__)

VISIT_CODE_ATTEMPTS = 100
CODE_NOT_SENT_MESSAGE = "Send the visit code to a dentist before completing the visit."

REJECTION_NOTES = {
    "human_error": "Rejected: Human error",
    "left": "Rejected: Patient left",
    "inquiry_only": "Inquiry only: Patient inquired about services but did not proceed with treatment",
}


def serialize_visit(visit: PatientVisit) -> dict:
    patient = visit.patient
    dentist = visit.dentist

    def iso(value):
        return value.isoformat() if value else None

    return {
        "id": visit.id,
        "patient_id": visit.patient_id,
        "patient": {
            "id": patient.id,
            "first_name": patient.first_name,
            "last_name": patient.last_name,
            "contact_number": patient.contact_number,
        }
        if patient
        else None,
        "service_id": visit.service_id,
        "service": {"id": visit.service.id, "name": visit.service.name} if visit.service else None,
        "appointment_id": visit.appointment_id,
        "visit_type": "appointment" if visit.appointment_id else "walkin",
        "dentist_schedule_id": visit.dentist_schedule_id,
        "dentist": {"id": dentist.id, "code": dentist.dentist_code, "name": dentist.dentist_name} if dentist else None,
        "visit_date": iso(visit.visit_date),
        "start_time": iso(visit.start_time),
        "end_time": iso(visit.end_time),
        "status": visit.status,
        "visit_code": visit.visit_code,
        "visit_code_sent_at": iso(visit.visit_code_sent_at),
        "medical_history_status": visit.medical_history_status,
        "note": visit.note,
        "teeth_treated": visit.teeth_treated,
        "created_at": iso(visit.created_at),
    }


def rejection_note(reason: str, offered_appointment: bool) -> str:
    if reason == "line_too_long":
        return f"Rejected: Line too long. Offered appointment: {'Yes' if offered_appointment else 'No'}"
    return REJECTION_NOTES.get(reason, "Rejected: Unknown reason")


def serialize_match(patient: Patient) -> dict:
    return {
        "id": patient.id,
        "first_name": patient.first_name,
        "last_name": patient.last_name,
        "contact_number": patient.contact_number,
        "birthdate": patient.birthdate.isoformat() if patient.birthdate else None,
        "has_user_account": patient.user_id is not None,
        "user_email": patient.user.email if patient.user else None,
        "is_linked": patient.is_linked,
    }


class VisitService:
    """Service layer for patient visits"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = VisitRepository()

    def get_visit(self, visit_id: int) -> PatientVisit:
        visit = self.repo.get(self.db, visit_id)
        if not visit:
            raise HTTPException(status_code=404, detail="Visit not found")
        return visit

    def _unique_visit_code(self) -> str:
        for _ in range(VISIT_CODE_ATTEMPTS):
            code = generate_visit_code()
            if not self.repo.visit_code_exists(self.db, code):
                return code
        logger.error(f"❌ No unique visit code after {VISIT_CODE_ATTEMPTS} attempts")
        raise HTTPException(status_code=500, detail="Unable to generate a unique visit code.")

    # ------------------------------------------------------------------
    # Tracker
    # ------------------------------------------------------------------

    def tracker(self) -> list[dict]:
        return [serialize_visit(v) for v in self.repo.tracker(self.db, clinic_today())]

    def stats(self) -> dict:
        return self.repo.stats(self.db, clinic_today())

    # ------------------------------------------------------------------
    # Start a visit
    # ------------------------------------------------------------------

    def start_walkin(self) -> dict:
        patient = Patient(first_name="Patient", last_name=generate_code(6, string.ascii_uppercase), is_linked=False)
        self.db.add(patient)
        self.db.flush()

        now = clinic_now()
        visit = PatientVisit(
            patient_id=patient.id,
            visit_date=now.date(),
            start_time=now,
            status="pending",
            visit_code=self._unique_visit_code(),
            medical_history_status="pending",
            created_at=now,
        )
        self.db.add(visit)
        self.db.commit()
        self.db.refresh(visit)

        logger.info(f"✅ Walk-in visit #{visit.id} started for placeholder patient #{patient.id}")
        return {"visit": serialize_visit(visit), "requires_medical_history": True}

    def start_from_appointment(self, reference_code: Optional[str]) -> tuple[dict, int]:
        if not reference_code:
            raise FieldValidationError.single("reference_code", "The reference code field is required.")

        appointment = AppointmentRepository.by_reference(self.db, reference_code, status="approved")
        if not appointment or appointment.date != clinic_today():
            raise HTTPException(status_code=422, detail="Invalid or unavailable reference code.")

        existing = self.repo.pending_for_appointment(self.db, appointment.id)
        if existing:
            return (
                {
                    "visit": serialize_visit(existing),
                    "requires_medical_history": existing.medical_history_status == "pending",
                    "message": "Visit already exists for this appointment.",
                },
                200,
            )

        now = clinic_now()
        visit = PatientVisit(
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            service_id=appointment.service_id,
            dentist_schedule_id=None,
            visit_date=now.date(),
            start_time=now,
            status="pending",
            medical_history_status="pending",
            created_at=now,
        )
        self.db.add(visit)
        self.db.commit()
        self.db.refresh(visit)

        logger.info(f"✅ Visit #{visit.id} started from appointment #{appointment.id}")
        return (
            {
                "visit": serialize_visit(visit),
                "requires_medical_history": True,
                "message": "Medical history required before visit can proceed.",
            },
            201,
        )

    # ------------------------------------------------------------------
    # Medical history
    # ------------------------------------------------------------------

    def medical_history(self, visit_id: int) -> dict:
        visit = self.get_visit(visit_id)
        return {
            "medical_history": visit.medical_history,
            "visit": serialize_visit(visit),
            "requires_medical_history": visit.medical_history_status != "completed",
        }

    def submit_medical_history(self, visit_id: int, data: MedicalHistoryRequest, user: User) -> dict:
        visit = self.get_visit(visit_id)
        if visit.medical_history_status == "completed":
            raise HTTPException(status_code=422, detail="Medical history already completed for this visit.")

        answers = data.model_dump(mode="json")
        patient = visit.patient
        if patient:
            answers["full_name"] = answers["full_name"] or f"{patient.first_name} {patient.last_name}"
            answers["sex"] = answers["sex"] or patient.sex
            answers["address"] = answers["address"] or patient.address
            answers["contact_number"] = answers["contact_number"] or patient.contact_number
            if not answers["date_of_birth"] and patient.birthdate:
                answers["date_of_birth"] = patient.birthdate.isoformat()
            if answers["age"] is None and patient.birthdate:
                answers["age"] = patient_age(patient)

        answers["completed_by"] = user.id
        answers["completed_at"] = clinic_now().isoformat()

        visit.medical_history = answers
        visit.medical_history_status = "completed"
        visit.visit_code = self._unique_visit_code()
        if visit.appointment:
            visit.appointment.reference_code = None

        self.db.commit()
        self.db.refresh(visit)
        logger.info(f"✅ Medical history completed for visit #{visit.id}, visit code issued")
        return {
            "message": "Medical history completed. Visit code generated.",
            "visit": serialize_visit(visit),
            "medical_history": visit.medical_history,
        }

    # ------------------------------------------------------------------
    # Dentist hand-off
    # ------------------------------------------------------------------

    def send_visit_code(self, visit_id: int, dentist_id: int, user: User) -> dict:
        visit = self.get_visit(visit_id)
        dentist = self.db.query(DentistSchedule).filter(DentistSchedule.id == dentist_id).first()
        if not dentist:
            raise FieldValidationError.single("dentist_schedule_id", "The selected dentist schedule id is invalid.")

        if not active_on_date(dentist, clinic_today()):
            raise HTTPException(status_code=422, detail="Selected dentist is not working today.")
        if visit.status != "pending":
            raise HTTPException(status_code=422, detail="Visit is no longer pending.")
        if visit.medical_history_status != "completed":
            raise HTTPException(
                status_code=422, detail="Medical history must be completed before sending visit code to dentist."
            )
        if not visit.visit_code:
            raise HTTPException(
                status_code=422,
                detail="Visit code has not been generated. Please complete the medical history first.",
            )

        now = clinic_now()
        visit.dentist_schedule_id = dentist.id
        visit.visit_code_sent_at = now

        dentist_name = dentist.dentist_name or dentist.dentist_code
        patient_name = f"{visit.patient.first_name} {visit.patient.last_name}"
        service_name = visit.service.name if visit.service else "Not specified"
        started = visit.start_time.strftime("%b %d, %Y %I:%M %p") if visit.start_time else "-"

        dentist_user = UserRepository.by_email(self.db, dentist.email) if dentist.email else None
        if dentist_user and dentist_user.role == "dentist":
            notify_users(
                self.db,
                [dentist_user],
                "visit_code",
                f"New Patient Visit - {patient_name}",
                f"Visit Code: {visit.visit_code}\nPatient: {patient_name}\nService: {service_name}\nStarted: {started}",
                data={
                    "visit_id": visit.id,
                    "visit_code": visit.visit_code,
                    "patient_name": patient_name,
                    "service_name": service_name,
                    "dentist_id": dentist.id,
                    "dentist_name": dentist_name,
                    "action_url": f"/dentist/visit/{visit.visit_code}",
                },
                created_by=user.id,
            )
        else:
            logger.warning(f"⚠️ No dentist account for {dentist_name}, visit code sent by email only")

        self.db.commit()
        self.db.refresh(visit)
        queue_email(
            self.db,
            dentist.email,
            f"New patient visit - {patient_name}",
            visit_code_template(
                dentist_name=dentist_name,
                patient_name=patient_name,
                service_name=service_name,
                visit_code=visit.visit_code,
                started=started,
            ),
        )

        logger.info(f"🔗 Visit code for visit #{visit.id} sent to dentist {dentist_name} by {user.name}")
        return {
            "message": "Visit code sent successfully to dentist.",
            "dentist_name": dentist_name,
            "visit": serialize_visit(visit),
        }

    # ------------------------------------------------------------------
    # Dentist notes
    # ------------------------------------------------------------------

    @staticmethod
    def _check_teeth(teeth_treated: Optional[str]) -> None:
        if teeth_treated:
            errors = validate_teeth_format(teeth_treated)
            if errors:
                raise FieldValidationError({"teeth_treated": errors}, "Invalid teeth format")

    def _store_notes(
        self,
        visit: PatientVisit,
        user: User,
        dentist_notes: Optional[str] = None,
        findings: Optional[str] = None,
        treatment_plan: Optional[str] = None,
        teeth_treated: Optional[str] = None,
    ) -> VisitNote:
        """Create or update the encrypted notes; fields left out keep their stored value"""
        notes = visit.notes
        if notes is None:
            notes = VisitNote(created_by=user.id)
            visit.notes = notes
        else:
            notes.updated_by = user.id

        if dentist_notes is not None:
            notes.dentist_notes_encrypted = encrypt_note(dentist_notes)
        if findings is not None:
            notes.findings_encrypted = encrypt_note(findings)
        if treatment_plan is not None:
            notes.treatment_plan_encrypted = encrypt_note(treatment_plan)
        if teeth_treated:
            notes.teeth_treated = sanitize_teeth(teeth_treated)
        return notes

    def _decrypt_notes(self, notes: VisitNote) -> dict:
        try:
            return {
                "dentist_notes": decrypt_note(notes.dentist_notes_encrypted),
                "findings": decrypt_note(notes.findings_encrypted),
                "treatment_plan": decrypt_note(notes.treatment_plan_encrypted),
            }
        except InvalidToken as e:
            logger.error(f"❌ Failed to decrypt notes for visit #{notes.patient_visit_id}")
            raise HTTPException(status_code=500, detail="Failed to decrypt notes.") from e

    def _record_access(self, notes: VisitNote, user: User) -> None:
        notes.last_accessed_at = clinic_now()
        notes.last_accessed_by = user.id
        self.db.commit()

    def save_dentist_notes(self, visit_id: int, data: DentistNotesRequest, user: User) -> dict:
        visit = self.get_visit(visit_id)
        if visit.status != "pending":
            raise HTTPException(status_code=422, detail="Only pending visits can have notes updated.")
        self._check_teeth(data.teeth_treated)

        action = "updated" if visit.notes else "created"
        self._store_notes(visit, user, **data.model_dump())
        self.db.commit()

        logger.info(f"📝 Dentist notes {action} for visit #{visit.id} by {user.role} #{user.id}")
        return {"message": "Dentist notes saved successfully."}

    def dentist_notes(self, visit_id: int, user: User) -> dict:
        visit = self.get_visit(visit_id)
        price = float(get_price_for_date(self.db, visit.service, visit.visit_date)) if visit.service else None

        notes = visit.notes
        if notes is None:
            logger.info(f"Notes requested for visit #{visit.id} (none yet) by {user.role} #{user.id}")
            return {
                "dentist_notes": None,
                "findings": None,
                "treatment_plan": None,
                "teeth_treated": None,
                "service_price_at_date": price,
            }

        body = self._decrypt_notes(notes)
        self._record_access(notes, user)
        logger.info(f"Notes for visit #{visit.id} accessed by {user.role} #{user.id}")
        return {
            **body,
            "teeth_treated": notes.teeth_treated,
            "created_by": notes.created_by,
            "created_at": notes.created_at.isoformat() if notes.created_at else None,
            "updated_by": notes.updated_by,
            "updated_at": notes.updated_at.isoformat() if notes.updated_at else None,
            "service_price_at_date": price,
        }

    def view_notes(self, visit_id: int, password: str, user: User) -> dict:
        """Decrypt the notes after re-checking the caller's password"""
        visit = self.get_visit(visit_id)
        notes = visit.notes
        if notes is None:
            raise HTTPException(status_code=404, detail="No notes found for this visit.")

        if not verify_password(password, user.password):
            logger.warning(f"🔒 Visit #{visit.id} notes denied for user #{user.id}: invalid password")
            raise HTTPException(status_code=401, detail="Invalid password.")

        body = self._decrypt_notes(notes)
        self._record_access(notes, user)
        logger.info(f"🔓 Visit #{visit.id} notes decrypted for user #{user.id}")
        return {
            "message": "Notes decrypted successfully.",
            "notes": {
                **body,
                "completed_by": notes.created_by,
                "completed_at": notes.created_at.isoformat() if notes.created_at else None,
                "last_accessed_at": notes.last_accessed_at.isoformat(),
                "last_accessed_by": notes.last_accessed_by,
            },
        }

    # ------------------------------------------------------------------
    # Finish / reject / complete
    # ------------------------------------------------------------------

    def _ensure_ready_to_complete(self, visit: PatientVisit, pending_message: str) -> None:
        if visit.status != "pending":
            raise HTTPException(status_code=422, detail=pending_message)
        if not visit.dentist_schedule_id or not visit.visit_code_sent_at:
            raise HTTPException(status_code=422, detail=CODE_NOT_SENT_MESSAGE)

    def finish(self, visit_id: int) -> dict:
        visit = self.get_visit(visit_id)
        self._ensure_ready_to_complete(visit, "Only pending visits can be processed.")
        if visit.appointment and visit.appointment.status == "approved":
            visit.appointment.status = "completed"
        self.repo.save(self.db, visit, end_time=clinic_now(), status="completed", visit_code=None)
        logger.info(f"✅ Visit #{visit.id} completed")
        return {"message": "Visit completed."}

    def reject(self, visit_id: int, reason: str, offered_appointment: bool) -> dict:
        visit = self.get_visit(visit_id)
        if visit.status != "pending":
            raise HTTPException(status_code=422, detail="Only pending visits can be processed.")

        status = "inquiry" if reason == "inquiry_only" else "rejected"
        self.repo.save(
            self.db,
            visit,
            end_time=clinic_now(),
            status=status,
            note=rejection_note(reason, offered_appointment),
            visit_code=None,
        )
        logger.info(f"Visit #{visit.id} closed as {status} ({reason})")
        return {"message": "Visit marked as inquiry only." if status == "inquiry" else "Visit rejected."}

    def complete_with_details(self, visit_id: int, data: CompleteVisitRequest, user: User) -> dict:
        """
        Complete a visit: consume stock (FEFO), encrypt the dentist notes, settle
        the payment and mirror the payment status onto the matching appointments.
        Runs as a single transaction.
        """
        visit = self.get_visit(visit_id)
        self._ensure_ready_to_complete(visit, "Only pending visits can be completed.")

        self._check_teeth(data.teeth_treated)

        touched_items = []
        try:
            for line in data.stock_items:
                consume_stock(self.db, line.item_id, line.quantity, user.id, "visit", visit.id, line.notes)
                touched_items.append(line.item_id)

            now = clinic_now()
            if data.dentist_notes or data.findings or data.treatment_plan or data.teeth_treated:
                self._store_notes(
                    visit, user, data.dentist_notes, data.findings, data.treatment_plan, data.teeth_treated
                )
            if data.teeth_treated:
                visit.teeth_treated = sanitize_teeth(data.teeth_treated)
            visit.end_time = now
            visit.status = "completed"
            visit.visit_code = None

            self._settle_payment(visit, data, user, now)

            appointment_status = "unpaid" if data.payment_status == "unpaid" else "paid"
            matching = self.repo.matching_appointments(self.db, visit)
            for appointment in matching:
                old = appointment.payment_status
                appointment.payment_status = appointment_status
                if appointment.status == "approved":
                    appointment.status = "completed"
                logger.info(f"Appointment #{appointment.id} payment status {old} -> {appointment_status}")

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for item_id in touched_items:
            item = InventoryRepository.get_item(self.db, item_id)
            if item:
                check_low_stock(self.db, item)

        self.db.refresh(visit)
        logger.info(f"✅ Visit #{visit.id} completed with details (payment={data.payment_status})")
        return {"message": "Visit completed successfully", "visit": serialize_visit(visit)}

    def _settle_payment(self, visit: PatientVisit, data: CompleteVisitRequest, user: User, now) -> None:
        payments = self.repo.visit_payments(self.db, visit)
        total_paid = sum(float(p.amount_paid or 0) for p in payments if p.status == "paid")

        service_price = 0.0
        if visit.service:
            unit = get_price_for_date(self.db, visit.service, visit.visit_date)
            service_price = float(calculate_total_price(visit.service, unit, visit.teeth_treated))

        stamp = int(now.timestamp())

        def record(method: str, amount: float, prefix: str) -> None:
            self.db.add(
                Payment(
                    patient_visit_id=visit.id,
                    method=method,
                    status="paid",
                    amount_due=amount,
                    amount_paid=amount,
                    reference_no=f"{prefix}-{visit.id}-{stamp}",
                    created_by=user.id,
                    paid_at=now,
                    created_at=now,
                )
            )

        if data.payment_status == "paid":
            if total_paid < service_price:
                record("cash", round(service_price - total_paid, 2), "CASH")
        elif data.payment_status == "hmo_fully_covered":
            record("hmo", service_price, "HMO")
        elif data.payment_status == "partial" and data.onsite_payment_amount is not None:
            record("cash", float(data.onsite_payment_amount), "CASH")
        elif data.payment_status == "unpaid" and data.payment_method_change == "maya_to_cash":
            maya = next((p for p in payments if p.method == "maya" and p.status != "cancelled"), None)
            if maya:
                maya.method = "cash"
                maya.status = "paid"
                maya.amount_paid = maya.amount_due
                maya.paid_at = now
                logger.info(f"Payment #{maya.id} converted from maya to cash")

    # ------------------------------------------------------------------
    # Patient identity
    # ------------------------------------------------------------------

    def update_patient(self, visit_id: int, data: UpdateVisitPatientRequest) -> dict:
        visit = self.get_visit(visit_id)
        patient = visit.patient

        if data.service_id and not self.db.query(Service.id).filter(Service.id == data.service_id).first():
            raise FieldValidationError.single("service_id", "The selected service id is invalid.")

        name_changed = (
            data.first_name.strip().lower() != (patient.first_name or "").strip().lower()
            or data.last_name.strip().lower() != (patient.last_name or "").strip().lower()
        )
        matches = []
        if name_changed:
            matches = PatientRepository.find_potential_matches(
                self.db, data.first_name, data.last_name, exclude_id=patient.id
            )

        patient.first_name = data.first_name.strip()
        patient.last_name = data.last_name.strip()
        patient.contact_number = data.contact_number
        visit.service_id = data.service_id
        self.db.commit()
        self.db.refresh(visit)

        return {
            "message": "Patient updated",
            "visit": serialize_visit(visit),
            "potential_matches": [serialize_match(m) for m in matches],
        }

    def potential_matches(self, visit_id: int) -> dict:
        visit = self.get_visit(visit_id)
        patient = visit.patient
        if not patient:
            return {"potential_matches": []}
        matches = PatientRepository.find_potential_matches(
            self.db, patient.first_name, patient.last_name, exclude_id=patient.id
        )
        return {"potential_matches": [serialize_match(m) for m in matches]}

    def link_existing(self, visit_id: int, target_patient_id: int, service_id: Optional[int]) -> dict:
        visit = self.get_visit(visit_id)
        target = PatientRepository.get(self.db, target_patient_id)
        if not target:
            raise FieldValidationError.single("target_patient_id", "The selected target patient id is invalid.")

        if visit.appointment_id is not None:
            logger.warning(f"⚠️ Refused to relink appointment visit #{visit.id}")
            raise HTTPException(
                status_code=422,
                detail="Cannot link visit: This visit is from an appointment and is already associated with a patient.",
            )

        old_patient = visit.patient
        other_visits = self.repo.visit_count_for_patient(self.db, old_patient.id) - 1 if old_patient else 0

        visit.patient = target
        if service_id:
            visit.service_id = service_id

        if old_patient and old_patient.id != target.id and other_visits == 0:
            self.db.flush()
            logger.info(f"🗑️ Deleting placeholder patient #{old_patient.id} ({old_patient.last_name})")
            self.db.delete(old_patient)

        self.db.commit()
        visit = self.get_visit(visit.id)
        return {
            "message": "Visit successfully linked to existing patient profile.",
            "visit": serialize_visit(visit),
        }

    # ------------------------------------------------------------------
    # Payment records
    # ------------------------------------------------------------------

    def payment_records(self, search, appointment_date, visit_date, page: int, per_page: Optional[int]) -> dict:
        query = self.repo.paid_payments_query(self.db, search, appointment_date, visit_date)
        return paginate(query, page, clamp_per_page(per_page, default=20), self.payment_row)

    def payment_row(self, payment: Payment) -> dict:
        appointment = payment.appointment
        visit = payment.visit
        patient = (appointment.patient if appointment else None) or (visit.patient if visit else None)
        service = (appointment.service if appointment else None) or (visit.service if visit else None)
        return {
            "id": payment.id,
            "reference_no": payment.reference_no,
            "method": payment.method,
            "status": payment.status,
            "amount_due": float(payment.amount_due or 0),
            "amount_paid": float(payment.amount_paid or 0),
            "currency": payment.currency or "PHP",
            "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
            "patient_name": f"{patient.first_name} {patient.last_name}" if patient else None,
            "service_name": service.name if service else None,
            "appointment_id": payment.appointment_id,
            "appointment_date": appointment.date.isoformat() if appointment else None,
            "appointment_reference_code": appointment.reference_code if appointment else None,
            "patient_visit_id": payment.patient_visit_id,
            "visit_date": visit.visit_date.isoformat() if visit else None,
        }

    def receipt_data(self, payment_id: int) -> dict:
        payment = self.repo.get_payment(self.db, payment_id)
        if not payment or payment.status != "paid":
            raise HTTPException(status_code=404, detail="Payment record not found")
        return {"data": payment_receipt_data(self.db, payment)}
