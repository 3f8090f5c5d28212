"""Visit repository - Database operations for patient visits and payment records"""

from datetime import date
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, joinedload

from ...models import Appointment, Patient, Payment
from ...models_visit import PatientVisit


class VisitRepository:
    """Repository for visit database operations"""

    @staticmethod
    def get(db: Session, visit_id: int) -> Optional[PatientVisit]:
        return (
            db.query(PatientVisit)
            .options(joinedload(PatientVisit.patient), joinedload(PatientVisit.service))
            .filter(PatientVisit.id == visit_id)
            .first()
        )

    @staticmethod
    def visit_code_exists(db: Session, code: str) -> bool:
        return db.query(PatientVisit.id).filter(PatientVisit.visit_code == code).first() is not None

    @staticmethod
    def pending_for_appointment(db: Session, appointment_id: int) -> Optional[PatientVisit]:
        return (
            db.query(PatientVisit)
            .filter(PatientVisit.appointment_id == appointment_id, PatientVisit.status == "pending")
            .first()
        )

    @staticmethod
    def tracker(db: Session, today: date, limit: int = 50) -> list[PatientVisit]:
        """All pending visits plus the ones completed today"""
        return (
            db.query(PatientVisit)
            .options(joinedload(PatientVisit.patient), joinedload(PatientVisit.service))
            .filter(
                or_(
                    PatientVisit.status == "pending",
                    (PatientVisit.visit_date == today) & (PatientVisit.status == "completed"),
                )
            )
            .order_by(PatientVisit.created_at.desc(), PatientVisit.id.desc())
            .limit(limit)
            .all()
        )

    @classmethod
    def stats(cls, db: Session, today: date) -> dict:
        pending = db.query(func.count(PatientVisit.id)).filter(PatientVisit.status == "pending").scalar() or 0
        completed_today = (
            db.query(func.count(PatientVisit.id))
            .filter(PatientVisit.visit_date == today, PatientVisit.status == "completed")
            .scalar()
            or 0
        )
        return {"today_visits": pending + completed_today, "pending_visits": pending}

    @staticmethod
    def visit_count_for_patient(db: Session, patient_id: int) -> int:
        return db.query(func.count(PatientVisit.id)).filter(PatientVisit.patient_id == patient_id).scalar() or 0

    @staticmethod
    def matching_appointments(db: Session, visit: PatientVisit) -> list[Appointment]:
        """Approved or completed appointments for the same patient, service and date"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.patient_id == visit.patient_id,
                Appointment.service_id == visit.service_id,
                Appointment.date == visit.visit_date,
                Appointment.status.in_(("approved", "completed")),
            )
            .all()
        )

    @staticmethod
    def visit_payments(db: Session, visit: PatientVisit) -> list[Payment]:
        """Payments on the visit itself or on the appointment it came from"""
        conditions = [Payment.patient_visit_id == visit.id]
        if visit.appointment_id:
            conditions.append(Payment.appointment_id == visit.appointment_id)
        return db.query(Payment).filter(or_(*conditions)).order_by(Payment.id.asc()).all()

    @staticmethod
    def paid_payments_query(
        db: Session,
        search: Optional[str] = None,
        appointment_date: Optional[date] = None,
        visit_date: Optional[date] = None,
    ) -> Query:
        query = (
            db.query(Payment)
            .outerjoin(Appointment, Payment.appointment_id == Appointment.id)
            .outerjoin(PatientVisit, Payment.patient_visit_id == PatientVisit.id)
            .outerjoin(
                Patient,
                or_(Patient.id == Appointment.patient_id, Patient.id == PatientVisit.patient_id),
            )
            .filter(Payment.status == "paid")
        )
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Patient.first_name.ilike(term),
                    Patient.last_name.ilike(term),
                    (Patient.first_name + " " + Patient.last_name).ilike(term),
                    Payment.reference_no.ilike(term),
                    Appointment.reference_code.ilike(term),
                )
            )
        if appointment_date:
            query = query.filter(Appointment.date == appointment_date)
        if visit_date:
            query = query.filter(PatientVisit.visit_date == visit_date)
        return query.order_by(Payment.paid_at.desc(), Payment.id.desc())

    @staticmethod
    def get_payment(db: Session, payment_id: int) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.id == payment_id).first()

    @staticmethod
    def save(db: Session, entity, **fields):
        for key, value in fields.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity
