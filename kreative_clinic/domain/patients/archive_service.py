"""Archived patient service - admin view of archived records and reactivation"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Patient, User
from ...shared.pagination import clamp_per_page, paginate
from .repository import PatientRepository

logger = logging.getLogger(__name__)


def _user_summary(user: Optional[User]) -> Optional[dict]:
    if not user:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


class ArchivedPatientService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = PatientRepository()

    def list_archived(
        self,
        search: Optional[str] = None,
        archived_before: Optional[date] = None,
        archived_after: Optional[date] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> dict:
        query = self.repo.archived_query(self.db, search, archived_before, archived_after)
        return paginate(query, page, clamp_per_page(per_page), self._serialize)

    def reactivate(self, patient_id: int, current_user: User) -> dict:
        patient = self.repo.get(self.db, patient_id)
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")
        if not patient.archived_at:
            raise HTTPException(status_code=422, detail={"status": "error", "message": "Patient is not archived."})

        patient = self.repo.save(self.db, patient, archived_at=None, archived_by=None, archived_reason=None)
        logger.info(f"✅ Patient #{patient.id} reactivated by user #{current_user.id}")
        return {"status": "success", "message": "Patient account reactivated.", "patient": self._serialize(patient)}

    def _serialize(self, patient: Patient) -> dict:
        archived_by = self.db.query(User).filter(User.id == patient.archived_by).first() if patient.archived_by else None
        last_visit = self.repo.last_completed_visit(self.db, patient.id)
        user = patient.user
        return {
            "id": patient.id,
            "first_name": patient.first_name,
            "last_name": patient.last_name,
            "middle_name": patient.middle_name,
            "email": user.email if user else None,
            "contact_number": patient.contact_number,
            "archived_at": patient.archived_at.isoformat() if patient.archived_at else None,
            "archived_reason": patient.archived_reason,
            "archived_by": _user_summary(archived_by),
            "last_visit_date": last_visit.visit_date.isoformat() if last_visit else None,
            "user": {**_user_summary(user), "status": user.status} if user else None,
        }
