"""Patient repository - Database operations for patients, HMOs and no-show tracking"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from ...models import Appointment, Patient, PatientHmo, PatientManager, User
from ...models_visit import PatientVisit


class PatientRepository:
    """Repository for patient database operations"""

    @staticmethod
    def get(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()

    @staticmethod
    def by_user(db: Session, user_id: int) -> Optional[Patient]:
        """Linked patient record of a user account"""
        return db.query(Patient).filter(Patient.user_id == user_id, Patient.is_linked.is_(True)).first()

    @staticmethod
    def search_query(db: Session, search: Optional[str] = None, include_archived: bool = False) -> Query:
        query = db.query(Patient)
        if not include_archived:
            query = query.filter(Patient.archived_at.is_(None))
        if search:
            like = f"%{search.strip()}%"
            conditions = [
                Patient.first_name.ilike(like),
                Patient.last_name.ilike(like),
                Patient.middle_name.ilike(like),
                Patient.contact_number.ilike(like),
                (Patient.first_name + " " + Patient.last_name).ilike(like),
            ]
            if search.strip().isdigit():
                conditions.append(Patient.id == int(search.strip()))
            query = query.filter(or_(*conditions))
        return query.order_by(Patient.last_name.asc(), Patient.first_name.asc())

    @staticmethod
    def find_potential_matches(
        db: Session, first_name: str, last_name: str, exclude_id: Optional[int] = None
    ) -> list[Patient]:
        """Case-insensitive, trimmed name matches used to flag duplicates"""
        query = db.query(Patient).filter(
            func.lower(Patient.first_name) == (first_name or "").strip().lower(),
            func.lower(Patient.last_name) == (last_name or "").strip().lower(),
        )
        if exclude_id:
            query = query.filter(Patient.id != exclude_id)
        return query.all()

    @staticmethod
    def last_completed_visit(db: Session, patient_id: int) -> Optional[PatientVisit]:
        return (
            db.query(PatientVisit)
            .filter(PatientVisit.patient_id == patient_id, PatientVisit.status == "completed")
            .order_by(PatientVisit.visit_date.desc(), PatientVisit.id.desc())
            .first()
        )

    @staticmethod
    def archived_query(db: Session, search: Optional[str] = None, archived_before=None, archived_after=None) -> Query:
        query = db.query(Patient).outerjoin(User, Patient.user_id == User.id).filter(Patient.archived_at.isnot(None))
        if search:
            like = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Patient.first_name.ilike(like),
                    Patient.last_name.ilike(like),
                    Patient.middle_name.ilike(like),
                    User.email.ilike(like),
                    User.name.ilike(like),
                )
            )
        if archived_before:
            query = query.filter(func.date(Patient.archived_at) <= archived_before.isoformat())
        if archived_after:
            query = query.filter(func.date(Patient.archived_at) >= archived_after.isoformat())
        return query.order_by(Patient.archived_at.desc())

    @staticmethod
    def save(db: Session, entity, **fields):
        for key, value in fields.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity

    @staticmethod
    def delete(db: Session, entity) -> None:
        db.delete(entity)
        db.commit()

    # HMOs

    @staticmethod
    def get_hmo(db: Session, patient_id: int, hmo_id: int) -> Optional[PatientHmo]:
        return db.query(PatientHmo).filter(PatientHmo.id == hmo_id, PatientHmo.patient_id == patient_id).first()

    @staticmethod
    def list_hmos(db: Session, patient_id: int) -> list[PatientHmo]:
        return (
            db.query(PatientHmo)
            .filter(PatientHmo.patient_id == patient_id)
            .order_by(PatientHmo.is_primary.desc(), PatientHmo.id.asc())
            .all()
        )

    @staticmethod
    def clear_primary_hmo(db: Session, patient_id: int, keep_id: Optional[int] = None) -> None:
        query = db.query(PatientHmo).filter(PatientHmo.patient_id == patient_id, PatientHmo.is_primary.is_(True))
        if keep_id:
            query = query.filter(PatientHmo.id != keep_id)
        query.update({PatientHmo.is_primary: False}, synchronize_session=False)

    # No-show tracking

    @staticmethod
    def get_manager(db: Session, patient_id: int) -> Optional[PatientManager]:
        return db.query(PatientManager).filter(PatientManager.patient_id == patient_id).first()

    @staticmethod
    def get_or_create_manager(db: Session, patient_id: int) -> PatientManager:
        manager = db.query(PatientManager).filter(PatientManager.patient_id == patient_id).first()
        if manager:
            return manager
        manager = PatientManager(patient_id=patient_id, no_show_count=0, warning_count=0, block_status="active")
        db.add(manager)
        db.flush()
        return manager

    @staticmethod
    def no_shows_query(db: Session, patient_id: int) -> Query:
        return (
            db.query(Appointment)
            .filter(Appointment.patient_id == patient_id, Appointment.status == "no_show")
            .order_by(Appointment.date.desc(), Appointment.id.desc())
        )

    @staticmethod
    def manager_query(
        db: Session, status: Optional[str] = None, min_no_shows: Optional[int] = None, search: Optional[str] = None
    ) -> Query:
        query = db.query(PatientManager).join(Patient, PatientManager.patient_id == Patient.id)
        if status:
            query = query.filter(PatientManager.block_status == status)
        if min_no_shows:
            query = query.filter(PatientManager.no_show_count >= min_no_shows)
        if search:
            like = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Patient.first_name.ilike(like),
                    Patient.last_name.ilike(like),
                    Patient.contact_number.ilike(like),
                )
            )
        return query.order_by(PatientManager.no_show_count.desc(), PatientManager.id.asc())
