"""Appointment service - booking, approval, cancellation and reminders"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import BOOKING_WINDOW_DAYS
from ...models import Appointment, Patient, PatientHmo, Payment, Service, User
from ...security_utils import generate_reference_code
from ...services.sms_service import build_reminder_message, reminder_recipient, send_sms
from ...shared.errors import FieldValidationError
from ...shared.pagination import clamp_per_page, paginate
from ...shared.timeutils import BLOCK_MINUTES, blocks_needed, clinic_now, clinic_today, to_minutes
from ...shared.validators import normalize_reference_code
from ..catalog.pricing import calculate_estimated_minutes, get_price_for_date
from ..clinic_calendar.resolver import ClinicDateResolver
from ..patients.manager_service import booking_restrictions
from ..patients.preferred_dentist import resolve_preferred_dentist
from ..patients.repository import PatientRepository
from ..refunds.service import open_refund_request
from .capacity import available_slots, check_capacity
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, StaffAppointmentCreate

logger = logging.getLogger(__name__)

NOT_LINKED_MESSAGE = "Your account is not yet linked to a patient record. Please contact the clinic."
OUTSIDE_WINDOW_MESSAGE = "Date is outside the booking window."
OUTSIDE_HOURS_MESSAGE = "Selected time is outside clinic hours."
OVERLAP_MESSAGE = "You already have an appointment at this time. Please choose a different time slot."
STAFF_OVERLAP_MESSAGE = "Patient already has an appointment at this time. Please choose a different time slot."
WARNING_PAYMENT_MESSAGE = (
    "Your account is under warning due to previous no-shows. You can only book appointments using "
    "Maya (online payment) at this time. Please select Maya as your payment method or visit the clinic "
    "in person for walk-in services."
)


def serialize_appointment(appointment: Appointment) -> dict:
    patient = appointment.patient
    dentist = appointment.dentist

    def iso(value):
        return value.isoformat() if value else None

    return {
        "id": appointment.id,
        "patient_id": appointment.patient_id,
        "patient_name": f"{patient.first_name} {patient.last_name}".strip() if patient else None,
        "service_id": appointment.service_id,
        "service": {"id": appointment.service.id, "name": appointment.service.name} if appointment.service else None,
        "patient_hmo_id": appointment.patient_hmo_id,
        "dentist_schedule_id": appointment.dentist_schedule_id,
        "dentist": {"id": dentist.id, "code": dentist.dentist_code, "name": dentist.dentist_name} if dentist else None,
        "date": iso(appointment.date),
        "time_slot": appointment.time_slot,
        "status": appointment.status,
        "payment_method": appointment.payment_method,
        "payment_status": appointment.payment_status,
        "reference_code": appointment.reference_code,
        "notes": appointment.notes,
        "teeth_count": appointment.teeth_count,
        "honor_preferred_dentist": appointment.honor_preferred_dentist,
        "booked_by_staff": appointment.booked_by_staff,
        "cancellation_reason": appointment.cancellation_reason,
        "canceled_at": iso(appointment.canceled_at),
        "reminded_at": iso(appointment.reminded_at),
        "created_at": iso(appointment.created_at),
    }


def appointment_total(db: Session, appointment: Appointment) -> float:
    """Unit price on the appointment date, times teeth for per-teeth services"""
    service = appointment.service
    unit = get_price_for_date(db, service, appointment.date)
    if service.per_teeth_service and appointment.teeth_count:
        return round(unit * max(0, appointment.teeth_count), 2)
    return round(unit, 2)


class AppointmentService:
    """Service layer for appointment management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get(self.db, appointment_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found.")
        return appointment

    def _get_service(self, service_id: int) -> Service:
        service = self.db.query(Service).filter(Service.id == service_id).first()
        if not service:
            raise FieldValidationError.single("service_id", "The selected service id is invalid.")
        return service

    def slots(
        self,
        day,
        service_id: Optional[int],
        teeth_count: Optional[int],
        patient_id: Optional[int],
        honor_preferred: bool,
        user: User,
    ) -> dict:
        minutes = None
        if service_id:
            minutes = calculate_estimated_minutes(self._get_service(service_id), teeth_count)

        if patient_id:
            patient = PatientRepository.get(self.db, patient_id)
        else:
            patient = PatientRepository.by_user(self.db, user.id)
        return available_slots(self.db, day, minutes, patient, honor_preferred)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def _validate_slot(self, day, start: str, minutes: int, earliest, latest) -> str:
        """Window, open day, grid and closing checks; returns the end time"""
        if day < earliest or day > latest:
            raise HTTPException(status_code=422, detail=OUTSIDE_WINDOW_MESSAGE)

        resolver = ClinicDateResolver(self.db)
        snap = resolver.resolve(day)
        if not snap["is_open"]:
            raise HTTPException(status_code=422, detail="Clinic is closed on this date.")
        if start not in resolver.blocks(day):
            raise HTTPException(status_code=422, detail="Invalid start time (not on grid or outside hours).")

        end_min = to_minutes(start) + blocks_needed(minutes) * BLOCK_MINUTES
        if to_minutes(start) < to_minutes(snap["open_time"]) or end_min > to_minutes(snap["close_time"]):
            raise HTTPException(status_code=422, detail=OUTSIDE_HOURS_MESSAGE)
        return f"{end_min // 60:02d}:{end_min % 60:02d}"

    def _check_capacity(self, day, start: str, minutes: int, patient_id: int, honor: bool, exclude_id=None) -> dict:
        preferred = resolve_preferred_dentist(self.db, patient_id)
        result = check_capacity(
            self.db,
            day,
            start,
            minutes,
            exclude_id=exclude_id,
            preferred_dentist_id=preferred.id if preferred else None,
            requested_honor_preferred=honor,
        )
        if not result["ok"]:
            raise HTTPException(status_code=422, detail=result["message"])
        return result

    def _resolve_hmo(self, payment_method: str, patient_hmo_id: Optional[int], patient: Patient) -> Optional[int]:
        if payment_method != "hmo":
            return None
        if not patient_hmo_id:
            raise HTTPException(status_code=422, detail="Please select an HMO for this appointment.")
        hmo = self.db.query(PatientHmo).filter(PatientHmo.id == patient_hmo_id).first()
        if not hmo or hmo.patient_id != patient.id:
            raise HTTPException(status_code=422, detail="Selected HMO does not belong to this patient.")
        return hmo.id

    def _unique_reference_code(self) -> str:
        while True:
            code = generate_reference_code()
            if not self.repo.reference_code_exists(self.db, code):
                return code

    def _create(
        self,
        patient: Patient,
        service: Service,
        data: AppointmentCreate,
        time_slot: str,
        dentist_id: Optional[int],
        hmo_id: Optional[int],
        status: str,
        booked_by_staff: bool,
        created_by: Optional[int],
    ) -> Appointment:
        appointment = Appointment(
            patient_id=patient.id,
            service_id=service.id,
            patient_hmo_id=hmo_id,
            dentist_schedule_id=dentist_id,
            date=data.date,
            time_slot=time_slot,
            status=status,
            payment_method=data.payment_method,
            payment_status="awaiting_payment" if data.payment_method == "maya" else "unpaid",
            reference_code=self._unique_reference_code(),
            teeth_count=data.teeth_count,
            honor_preferred_dentist=data.honor_preferred_dentist,
            booked_by_staff=booked_by_staff,
            created_at=clinic_now(),
        )
        self.db.add(appointment)
        self.db.flush()

        if data.payment_method == "maya":
            appointment.service = service
            self.db.add(
                Payment(
                    appointment_id=appointment.id,
                    method="maya",
                    status="awaiting_payment",
                    amount_due=appointment_total(self.db, appointment),
                    amount_paid=0,
                    created_by=created_by,
                    created_at=clinic_now(),
                )
            )

        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def book(self, user: User, data: AppointmentCreate) -> dict:
        """Patient self-booking (tomorrow .. +BOOKING_WINDOW_DAYS)"""
        service = self._get_service(data.service_id)
        minutes = calculate_estimated_minutes(service, data.teeth_count)
        today = clinic_today()
        end = self._validate_slot(
            data.date, data.start_time, minutes, today + timedelta(days=1), today + timedelta(days=BOOKING_WINDOW_DAYS)
        )

        patient = PatientRepository.by_user(self.db, user.id)
        if not patient:
            raise HTTPException(status_code=422, detail=NOT_LINKED_MESSAGE)

        restrictions = booking_restrictions(self.db, patient.id)
        if restrictions["blocked"]:
            manager = PatientRepository.get_manager(self.db, patient.id)
            raise HTTPException(
                status_code=403,
                detail={
                    "message": restrictions["message"],
                    "blocked": True,
                    "block_type": manager.block_type if manager else None,
                    "block_reason": manager.block_reason if manager else None,
                },
            )
        if restrictions["warning"] and data.payment_method != "maya":
            raise HTTPException(
                status_code=422,
                detail={
                    "message": WARNING_PAYMENT_MESSAGE,
                    "warning_status": True,
                    "allowed_payment_methods": ["maya"],
                },
            )

        capacity = self._check_capacity(data.date, data.start_time, minutes, patient.id, data.honor_preferred_dentist)

        time_slot = f"{data.start_time}-{end}"
        if self.repo.has_overlap(self.db, patient.id, data.date, time_slot):
            raise HTTPException(status_code=422, detail=OVERLAP_MESSAGE)

        hmo_id = self._resolve_hmo(data.payment_method, data.patient_hmo_id, patient)
        appointment = self._create(
            patient, service, data, time_slot, capacity["assigned_dentist_id"], hmo_id, "pending", False, user.id
        )

        logger.info(
            f"✅ Appointment booked: #{appointment.id} {patient.first_name} {patient.last_name} "
            f"{service.name} {appointment.date} {time_slot}"
        )
        return {
            "message": "Appointment booked.",
            "reference_code": appointment.reference_code,
            "appointment": serialize_appointment(appointment),
        }

    def staff_create(self, user: User, data: StaffAppointmentCreate) -> dict:
        """Staff booking (today .. +BOOKING_WINDOW_DAYS), auto-approved"""
        if data.patient_id:
            patient = PatientRepository.get(self.db, data.patient_id)
            if not patient:
                raise FieldValidationError.single("patient_id", "The selected patient id is invalid.")
        else:
            errors = {}
            for field in ("first_name", "last_name", "contact_number"):
                if not (getattr(data, field) or "").strip():
                    errors[field] = [f"The {field.replace('_', ' ')} field is required."]
            if errors:
                raise FieldValidationError(errors)
            patient = None

        service = self._get_service(data.service_id)
        minutes = calculate_estimated_minutes(service, data.teeth_count)
        today = clinic_today()
        try:
            end = self._validate_slot(
                data.date, data.start_time, minutes, today, today + timedelta(days=BOOKING_WINDOW_DAYS)
            )
        except HTTPException as e:
            if e.detail == OUTSIDE_WINDOW_MESSAGE:
                raise HTTPException(
                    status_code=422, detail="Date is outside the booking window (today to 7 days)."
                ) from e
            raise

        if patient is None:
            patient = Patient(
                first_name=data.first_name.strip(),
                last_name=data.last_name.strip(),
                contact_number=data.contact_number,
                birthdate=data.birthdate,
                is_linked=False,
            )
            self.db.add(patient)
            self.db.flush()
            logger.info(f"✅ Patient record created for staff booking: #{patient.id}")

        capacity = self._check_capacity(data.date, data.start_time, minutes, patient.id, data.honor_preferred_dentist)

        time_slot = f"{data.start_time}-{end}"
        if self.repo.has_overlap(self.db, patient.id, data.date, time_slot):
            self.db.rollback()
            raise HTTPException(status_code=422, detail=STAFF_OVERLAP_MESSAGE)

        hmo_id = self._resolve_hmo(data.payment_method, data.patient_hmo_id, patient)
        appointment = self._create(
            patient, service, data, time_slot, capacity["assigned_dentist_id"], hmo_id, "approved", True, user.id
        )

        logger.info(f"✅ Staff {user.name} created appointment #{appointment.id} for patient #{patient.id}")
        return {"message": "Appointment created successfully.", "appointment": serialize_appointment(appointment)}

    # ------------------------------------------------------------------
    # Staff decisions
    # ------------------------------------------------------------------

    def approve(self, appointment_id: int, user: User) -> dict:
        appointment = self.get_appointment(appointment_id)
        if appointment.status != "pending":
            raise HTTPException(status_code=422, detail="Appointment already processed.")

        start = appointment.time_slot.split("-", 1)[0].strip() if appointment.time_slot else None
        if start:
            minutes = calculate_estimated_minutes(appointment.service, appointment.teeth_count)
            result = check_capacity(
                self.db,
                appointment.date,
                start,
                minutes,
                exclude_id=appointment.id,
                preferred_dentist_id=appointment.dentist_schedule_id,
                requested_honor_preferred=appointment.honor_preferred_dentist,
                force_dentist_id=appointment.dentist_schedule_id,
            )
            if not result["ok"]:
                logger.warning(f"⚠️ Approval of appointment #{appointment.id} blocked: {result['message']}")
                raise HTTPException(status_code=422, detail=result["message"])
            if not appointment.dentist_schedule_id:
                appointment.dentist_schedule_id = result["assigned_dentist_id"]

        appointment.status = "approved"
        self.db.commit()
        logger.info(f"✅ Appointment #{appointment.id} approved by {user.name}")
        return {"message": "Appointment approved."}

    def reject(self, appointment_id: int, note: str, reason: Optional[str], user: User) -> dict:
        appointment = self.get_appointment(appointment_id)
        if appointment.status != "pending":
            raise HTTPException(status_code=422, detail="Appointment already processed.")

        appointment.status = "rejected"
        appointment.notes = note
        appointment.cancellation_reason = reason or "health_safety_concern"
        appointment.payment_status = "unpaid"

        if appointment.payment_method == "maya":
            for payment in self.repo.open_payments(self.db, appointment.id, method="maya"):
                payment.status = "cancelled"
                payment.cancelled_at = clinic_now()

        self.db.commit()
        logger.info(f"Appointment #{appointment.id} rejected by {user.name}: {note}")
        return {"message": "Appointment rejected."}

    # ------------------------------------------------------------------
    # Patient changes
    # ------------------------------------------------------------------

    def cancel(self, appointment_id: int, user: User, reason: Optional[str], notes: Optional[str]) -> dict:
        is_admin = user.role == "admin"
        if is_admin:
            appointment = self.get_appointment(appointment_id)
            default_reason = "admin_cancellation"
        else:
            patient = PatientRepository.by_user(self.db, user.id)
            if not patient:
                raise HTTPException(status_code=403, detail="Not linked to patient profile.")
            appointment = self.repo.get(self.db, appointment_id)
            if not appointment or appointment.patient_id != patient.id:
                raise HTTPException(status_code=404, detail="Appointment not found.")
            default_reason = "patient_request"

        if appointment.status not in ("pending", "approved"):
            raise HTTPException(
                status_code=422,
                detail="This appointment cannot be canceled. Only pending appointments or approved appointments "
                "can be canceled.",
            )

        now = clinic_now()
        appointment.status = "cancelled"
        appointment.canceled_at = now
        appointment.cancellation_reason = reason or default_reason
        if notes:
            appointment.notes = f"{appointment.notes}\n{notes}" if appointment.notes else notes

        for payment in self.repo.open_payments(self.db, appointment.id):
            payment.status = "cancelled"
            payment.cancelled_at = now

        refund_created = False
        paid = self.repo.paid_payment(self.db, appointment.id)
        if paid:
            label = "admin" if is_admin else "patient"
            open_refund_request(self.db, appointment, paid, f"Appointment canceled by {label}")
            refund_created = True

        self.db.commit()
        logger.info(f"Appointment #{appointment.id} canceled by user #{user.id} (refund={refund_created})")
        return {"message": "Appointment canceled.", "refund_request_created": refund_created}

    def reschedule(self, appointment_id: int, user: User, day, start: str, honor: Optional[bool]) -> dict:
        patient = PatientRepository.by_user(self.db, user.id)
        if not patient:
            raise HTTPException(status_code=403, detail="Not linked to patient profile.")
        appointment = self.repo.get(self.db, appointment_id)
        if not appointment or appointment.patient_id != patient.id:
            raise HTTPException(status_code=404, detail="Appointment not found.")

        if appointment.payment_method != "maya" or appointment.payment_status != "paid":
            raise HTTPException(status_code=422, detail="Only paid Maya appointments can be rescheduled.")
        if appointment.status not in ("approved", "pending"):
            raise HTTPException(status_code=422, detail="This appointment cannot be rescheduled.")

        minutes = calculate_estimated_minutes(appointment.service, appointment.teeth_count)
        today = clinic_today()
        end = self._validate_slot(
            day, start, minutes, today + timedelta(days=1), today + timedelta(days=BOOKING_WINDOW_DAYS)
        )

        honor = appointment.honor_preferred_dentist if honor is None else honor
        self._check_capacity(day, start, minutes, patient.id, honor, exclude_id=appointment.id)

        restrictions = booking_restrictions(self.db, patient.id)
        if restrictions["blocked"]:
            raise HTTPException(status_code=403, detail={"message": restrictions["message"], "blocked": True})

        time_slot = f"{start}-{end}"
        if self.repo.has_overlap(self.db, patient.id, day, time_slot, exclude_id=appointment.id):
            raise HTTPException(status_code=422, detail=OVERLAP_MESSAGE)

        old = f"{appointment.date} {appointment.time_slot}"
        appointment = self.repo.save(
            self.db,
            appointment,
            date=day,
            time_slot=time_slot,
            status="pending",
            dentist_schedule_id=None,
            honor_preferred_dentist=honor,
            reminded_at=None,
            email_reminded_at=None,
        )
        logger.info(f"Appointment #{appointment.id} rescheduled from {old} to {day} {time_slot}")
        return {
            "message": "Appointment rescheduled successfully. It will need staff approval.",
            "appointment": serialize_appointment(appointment),
        }

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def list_appointments(
        self, status=None, day=None, patient_id=None, page: int = 1, per_page: Optional[int] = None
    ) -> dict:
        query = self.repo.list_query(self.db, status=status, day=day, patient_id=patient_id)
        return paginate(query, page, clamp_per_page(per_page), serialize_appointment)

    def user_appointments(self, user: User, start_date=None, end_date=None, page: int = 1) -> dict:
        patient = PatientRepository.by_user(self.db, user.id)
        if not patient:
            return {"data": [], "current_page": 1, "last_page": 1, "per_page": 10, "total": 0}

        query = self.db.query(Appointment).filter(
            Appointment.patient_id == patient.id, Appointment.status != "completed"
        )
        if start_date and end_date:
            query = query.filter(Appointment.date >= start_date, Appointment.date <= end_date)
        elif start_date:
            query = query.filter(Appointment.date == start_date)
        query = query.order_by(Appointment.date.desc(), Appointment.id.desc())
        return paginate(query, page, 10, serialize_appointment)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def remindable(self) -> list[dict]:
        today = clinic_today()
        appointments = self.repo.remindable(self.db, today + timedelta(days=1), today + timedelta(days=2))
        rows = []
        for appointment in appointments:
            row = serialize_appointment(appointment)
            row["contact_number"] = reminder_recipient(appointment)
            row["default_message"] = build_reminder_message(appointment)
            rows.append(row)
        return rows

    def send_reminder(self, appointment_id: int, message: Optional[str], edited: bool, user: User) -> dict:
        appointment = self.get_appointment(appointment_id)
        today = clinic_today()
        eligible_days = {today + timedelta(days=1), today + timedelta(days=2)}

        if appointment.reminded_at is not None:
            raise HTTPException(status_code=422, detail="Reminder already sent.")
        if appointment.status != "approved" or appointment.date not in eligible_days:
            raise HTTPException(status_code=422, detail="Not eligible for reminder.")
        if not appointment.patient or not appointment.patient.user:
            raise HTTPException(status_code=422, detail="Patient has no linked user account.")

        if not self.repo.claim_reminder(self.db, appointment.id, clinic_now()):
            raise HTTPException(status_code=422, detail="Reminder already sent.")

        self.db.refresh(appointment)
        text = build_reminder_message(appointment, message, edited)
        log = send_sms(
            self.db,
            reminder_recipient(appointment),
            text,
            subject="Dental Appointment Reminder",
            meta={"appointment_id": appointment.id, "sent_by": user.id, "edited": edited},
        )
        logger.info(f"📧 Reminder for appointment #{appointment.id} by {user.name}: {log.status}")
        return {"message": "Reminder sent.", "sms_status": log.status}

    # ------------------------------------------------------------------
    # Reference codes
    # ------------------------------------------------------------------

    def resolve_code(self, code: str) -> dict:
        normalized = normalize_reference_code(code)
        appointment = self.repo.by_reference(self.db, normalized, status="approved")
        if not appointment:
            raise HTTPException(status_code=404, detail="Invalid or used reference code.")

        last_visit = PatientRepository.last_completed_visit(self.db, appointment.patient_id)
        return {
            "id": appointment.id,
            "patient_name": f"{appointment.patient.first_name} {appointment.patient.last_name}",
            "service_name": appointment.service.name if appointment.service else None,
            "date": appointment.date.isoformat(),
            "time_slot": appointment.time_slot,
            "last_visit": {
                "visit_date": last_visit.visit_date.isoformat(),
                "service_name": last_visit.service.name if last_visit.service else None,
                "teeth_treated": last_visit.teeth_treated,
                "has_notes": last_visit.notes is not None,
            }
            if last_visit
            else None,
        }

    def resolve_exact(self, code: str, user: User) -> dict:
        normalized = normalize_reference_code(code)
        appointment = self.repo.by_reference(self.db, normalized)
        if not appointment:
            raise HTTPException(status_code=404, detail="No appointment found for that code")
        logger.info(f"🔍 {user.name} looked up appointment #{appointment.id} by reference code")
        return serialize_appointment(appointment)

    # ------------------------------------------------------------------
    # Staff dashboard
    # ------------------------------------------------------------------

    def today_time_blocks(self) -> dict:
        today = clinic_today()
        resolver = ClinicDateResolver(self.db)
        snap = resolver.resolve(today)
        if not snap["is_open"]:
            return {"is_open": False, "blocks": []}

        appointments = self.repo.approved_on(self.db, today)
        blocks = []
        for block in resolver.blocks(today):
            starting = [
                {
                    "id": a.id,
                    "patient_name": f"{a.patient.first_name} {a.patient.last_name}",
                    "service_name": a.service.name if a.service else None,
                    "time_slot": a.time_slot,
                    "status": a.status,
                    "reference_code": a.reference_code,
                }
                for a in appointments
                if a.time_slot and a.time_slot.split("-", 1)[0].strip()[:5] == block
            ]
            blocks.append({"time": block, "appointments": starting, "count": len(starting)})

        return {
            "is_open": True,
            "open_time": snap["open_time"],
            "close_time": snap["close_time"],
            "capacity": snap["effective_capacity"],
            "blocks": blocks,
        }
