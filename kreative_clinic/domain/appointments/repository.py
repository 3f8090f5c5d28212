"""Appointment repository - Database operations for appointments, slot usage and payments"""

from collections import defaultdict
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, joinedload

from ...models import Appointment, Payment
from ...shared.timeutils import parse_time_slot, slot_blocks, to_minutes

# Appointments in these states hold capacity
ACTIVE_STATUSES = ("pending", "approved", "completed")


def slots_overlap(slot_a: str, slot_b: str) -> bool:
    start_a, end_a = (to_minutes(t) for t in parse_time_slot(slot_a))
    start_b, end_b = (to_minutes(t) for t in parse_time_slot(slot_b))
    return start_a < end_b and end_a > start_b


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.patient), joinedload(Appointment.service))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def active_on_date(db: Session, day: date, exclude_id: Optional[int] = None) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.date == day, Appointment.status.in_(ACTIVE_STATUSES))
        if exclude_id:
            query = query.filter(Appointment.id != exclude_id)
        return query.all()

    @classmethod
    def slot_usage(cls, db: Session, day: date, blocks: list[str], exclude_id: Optional[int] = None) -> dict:
        """Active appointment count per block; only the given blocks are keyed"""
        usage = {block: 0 for block in blocks}
        for appointment in cls.active_on_date(db, day, exclude_id):
            for block in slot_blocks(appointment.time_slot):
                if block in usage:
                    usage[block] += 1
        return usage

    @classmethod
    def dentist_slot_usage(cls, db: Session, day: date, exclude_id: Optional[int] = None) -> dict:
        """{dentist_id: {"HH:MM": count}} for appointments with an assigned dentist"""
        usage = defaultdict(lambda: defaultdict(int))
        for appointment in cls.active_on_date(db, day, exclude_id):
            if not appointment.dentist_schedule_id:
                continue
            for block in slot_blocks(appointment.time_slot):
                usage[appointment.dentist_schedule_id][block] += 1
        return {dentist_id: dict(blocks) for dentist_id, blocks in usage.items()}

    @classmethod
    def has_overlap(
        cls, db: Session, patient_id: int, day: date, time_slot: str, exclude_id: Optional[int] = None
    ) -> bool:
        for appointment in cls.active_on_date(db, day, exclude_id):
            if appointment.patient_id == patient_id and slots_overlap(appointment.time_slot, time_slot):
                return True
        return False

    @classmethod
    def blocked_slots_for_patient(cls, db: Session, patient_id: int, day: date) -> list[str]:
        return [a.time_slot for a in cls.active_on_date(db, day) if a.patient_id == patient_id]

    @staticmethod
    def reference_code_exists(db: Session, code: str) -> bool:
        return db.query(Appointment.id).filter(Appointment.reference_code == code).first() is not None

    @staticmethod
    def by_reference(db: Session, code: str, status: Optional[str] = None) -> Optional[Appointment]:
        query = db.query(Appointment).filter(func.upper(Appointment.reference_code) == code)
        if status:
            query = query.filter(Appointment.status == status)
        return query.first()

    @staticmethod
    def list_query(
        db: Session,
        status: Optional[str] = None,
        day: Optional[date] = None,
        patient_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Query:
        query = db.query(Appointment).options(joinedload(Appointment.patient), joinedload(Appointment.service))
        if status:
            query = query.filter(Appointment.status == status)
        if day:
            query = query.filter(Appointment.date == day)
        if patient_id:
            query = query.filter(Appointment.patient_id == patient_id)
        if start_date and end_date:
            query = query.filter(Appointment.date >= start_date, Appointment.date <= end_date)
        return query.order_by(Appointment.created_at.desc(), Appointment.id.desc())

    @staticmethod
    def remindable(db: Session, first_day: date, last_day: date) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.status == "approved",
                Appointment.date >= first_day,
                Appointment.date <= last_day,
                Appointment.reminded_at.is_(None),
            )
            .order_by(Appointment.date.asc(), Appointment.time_slot.asc())
            .all()
        )

    @staticmethod
    def claim_reminder(db: Session, appointment_id: int, stamp) -> bool:
        """Set reminded_at only if still empty; False when another request won"""
        updated = (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.reminded_at.is_(None))
            .update({Appointment.reminded_at: stamp}, synchronize_session=False)
        )
        db.commit()
        return updated > 0

    @staticmethod
    def approved_on(db: Session, day: date) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.date == day, Appointment.status.in_(("approved", "completed")))
            .all()
        )

    @staticmethod
    def save(db: Session, entity, **fields):
        for key, value in fields.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity

    # Payments

    @staticmethod
    def open_payments(db: Session, appointment_id: int, method: Optional[str] = None) -> list[Payment]:
        query = db.query(Payment).filter(
            Payment.appointment_id == appointment_id, Payment.status.in_(("unpaid", "awaiting_payment"))
        )
        if method:
            query = query.filter(Payment.method == method)
        return query.all()

    @staticmethod
    def paid_payment(db: Session, appointment_id: int) -> Optional[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.appointment_id == appointment_id, Payment.status == "paid")
            .order_by(Payment.paid_at.desc(), Payment.id.desc())
            .first()
        )
