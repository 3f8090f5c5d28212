"""Dentist schedule repository - Database operations for dentists"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import DentistSchedule


class DentistRepository:
    """Repository for dentist schedule database operations"""

    @staticmethod
    def list_dentists(db: Session, status: Optional[str] = None) -> list[DentistSchedule]:
        query = db.query(DentistSchedule)
        if status:
            query = query.filter(DentistSchedule.status == status)
        return query.order_by(DentistSchedule.dentist_code.asc()).all()

    @staticmethod
    def get(db: Session, dentist_id: int) -> Optional[DentistSchedule]:
        return db.query(DentistSchedule).filter(DentistSchedule.id == dentist_id).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[DentistSchedule]:
        return db.query(DentistSchedule).filter(DentistSchedule.email == email).first()

    @staticmethod
    def get_by_code(db: Session, code: str) -> Optional[DentistSchedule]:
        return db.query(DentistSchedule).filter(DentistSchedule.dentist_code == code).first()

    @staticmethod
    def save(db: Session, dentist: DentistSchedule, **fields) -> DentistSchedule:
        for key, value in fields.items():
            if hasattr(dentist, key):
                setattr(dentist, key, value)
        db.add(dentist)
        db.commit()
        db.refresh(dentist)
        return dentist

    @staticmethod
    def delete(db: Session, dentist: DentistSchedule) -> None:
        db.delete(dentist)
        db.commit()
