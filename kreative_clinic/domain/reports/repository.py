"""Report repository - read-only queries over visits, appointments and payments"""

from datetime import date, datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Appointment, ClinicCalendar, Payment, Service
from ...models_inventory import InventoryBatch, InventoryMovement
from ...models_visit import PatientVisit
from ...shared.timeutils import end_of_day, start_of_day

APPOINTMENT_BACKED_STATUSES = ("approved", "completed")
LOSS_REASONS = ("expired", "theft")


class ReportRepository:
    @staticmethod
    def visits_started_between(db: Session, start: datetime, end: datetime) -> list[PatientVisit]:
        return (
            db.query(PatientVisit)
            .filter(PatientVisit.start_time.isnot(None), PatientVisit.start_time.between(start, end))
            .all()
        )

    @staticmethod
    def count_visits_between(db: Session, start: datetime, end: datetime) -> int:
        return (
            db.query(func.count(PatientVisit.id))
            .filter(PatientVisit.start_time.isnot(None), PatientVisit.start_time.between(start, end))
            .scalar()
        )

    @staticmethod
    def appointment_keys(db: Session, start: date, end: date) -> set[tuple]:
        """(patient_id, service_id, date) of approved or completed appointments in a range"""
        rows = (
            db.query(Appointment.patient_id, Appointment.service_id, Appointment.date)
            .filter(Appointment.status.in_(APPOINTMENT_BACKED_STATUSES), Appointment.date.between(start, end))
            .all()
        )
        return {tuple(row) for row in rows}

    @staticmethod
    def count_appointments(db: Session, status: str, start: date, end: date) -> int:
        return (
            db.query(func.count(Appointment.id))
            .filter(Appointment.status == status, Appointment.date.between(start, end))
            .scalar()
        )

    @staticmethod
    def service_names(db: Session) -> dict[int, str]:
        return dict(db.query(Service.id, Service.name).all())

    @staticmethod
    def excluded_service_ids(db: Session) -> set[int]:
        rows = db.query(Service.id).filter(Service.is_excluded_from_analytics.is_(True)).all()
        return {row[0] for row in rows}

    @staticmethod
    def paid_payments_between(db: Session, start: datetime, end: datetime) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.status == "paid", Payment.paid_at.between(start, end))
            .all()
        )

    @staticmethod
    def has_visit_on(db: Session, day: date) -> bool:
        return (
            db.query(PatientVisit.id)
            .filter(PatientVisit.start_time.between(start_of_day(day), end_of_day(day)))
            .first()
            is not None
        )

    @staticmethod
    def closing_overrides(db: Session, start: date, end: date) -> set[date]:
        rows = (
            db.query(ClinicCalendar.date)
            .filter(ClinicCalendar.date.between(start, end), ClinicCalendar.is_open.is_(False))
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def first_visits_between(db: Session, start: datetime, end: datetime) -> list[tuple]:
        """(patient_id, first start_time) for patients with a visit in the window"""
        return (
            db.query(PatientVisit.patient_id, func.min(PatientVisit.start_time))
            .filter(PatientVisit.start_time.isnot(None), PatientVisit.start_time.between(start, end))
            .group_by(PatientVisit.patient_id)
            .all()
        )

    @staticmethod
    def has_visit_between(db: Session, patient_id: int, start: datetime, end: datetime) -> bool:
        return (
            db.query(PatientVisit.id)
            .filter(PatientVisit.patient_id == patient_id, PatientVisit.start_time.between(start, end))
            .first()
            is not None
        )

    @staticmethod
    def active_appointments_between(db: Session, start: date, end: date, statuses: tuple) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.date.between(start, end), Appointment.status.in_(statuses))
            .all()
        )

    @staticmethod
    def revenue_between(db: Session, start: datetime, end: datetime) -> float:
        total = (
            db.query(func.coalesce(func.sum(Payment.amount_paid), 0))
            .filter(Payment.status == "paid", Payment.paid_at.between(start, end))
            .scalar()
        )
        return float(total or 0)

    @staticmethod
    def loss_cost_between(db: Session, start: datetime, end: datetime) -> float:
        """Cost of stock written off as expired or stolen"""
        total = (
            db.query(func.coalesce(func.sum(InventoryMovement.quantity * InventoryBatch.cost_per_unit), 0))
            .join(InventoryBatch, InventoryBatch.id == InventoryMovement.batch_id)
            .filter(
                InventoryMovement.type == "adjust",
                InventoryMovement.adjust_reason.in_(LOSS_REASONS),
                InventoryMovement.created_at.between(start, end),
            )
            .scalar()
        )
        return float(total or 0)
