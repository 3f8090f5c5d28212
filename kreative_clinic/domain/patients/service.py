"""Patient service - patient records, account linking, HMOs and record lookup"""

import logging
from typing import Optional

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Patient, PatientHmo, User
from ...models_visit import PatientVisit
from ...shared.errors import FieldValidationError
from ...shared.pagination import clamp_per_page, paginate
from ...shared.timeutils import clinic_today
from .preferred_dentist import dentist_summary, resolve_preferred_dentist
from .repository import PatientRepository
from .schemas import HmoCreate, HmoUpdate, LinkSelfRequest, PatientCreate, PatientResponse

logger = logging.getLogger(__name__)


def patient_age(patient: Patient) -> Optional[int]:
    if not patient.birthdate:
        return None
    return relativedelta(clinic_today(), patient.birthdate).years


def patient_summary(patient: Patient) -> dict:
    return {
        "id": patient.id,
        "patient_code": f"P-{patient.id:05d}",
        "full_name": f"{patient.first_name} {patient.last_name}".strip(),
        "first_name": patient.first_name,
        "last_name": patient.last_name,
        "sex": patient.sex,
        "contact_number": patient.contact_number,
        "age": patient_age(patient),
        "has_user_account": patient.user is not None,
    }


def patient_profile(patient: Patient) -> dict:
    user = patient.user
    return {
        "id": patient.id,
        "patient_code": f"P-{patient.id:05d}",
        "first_name": patient.first_name,
        "last_name": patient.last_name,
        "middle_name": patient.middle_name,
        "full_name": f"{patient.first_name} {patient.last_name}".strip(),
        "birthdate": patient.birthdate.isoformat() if patient.birthdate else None,
        "age": patient_age(patient),
        "sex": patient.sex,
        "contact_number": patient.contact_number,
        "address": patient.address,
        "archived_at": patient.archived_at.isoformat() if patient.archived_at else None,
        "user": {"id": user.id, "name": user.name, "email": user.email, "status": user.status} if user else None,
    }


class PatientService:
    """Service layer for patient management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PatientRepository()

    def get_patient(self, patient_id: int) -> Patient:
        patient = self.repo.get(self.db, patient_id)
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")
        return patient

    def list_patients(self, search: Optional[str], page: int, per_page: Optional[int]) -> dict:
        query = self.repo.search_query(self.db, search)
        return paginate(
            query,
            page,
            clamp_per_page(per_page),
            lambda p: PatientResponse.model_validate(p).model_dump(mode="json"),
        )

    def create_patient(self, data: PatientCreate) -> Patient:
        matches = self.repo.find_potential_matches(self.db, data.first_name, data.last_name)
        patient = self.repo.save(
            self.db,
            Patient(),
            **data.model_dump(),
            is_linked=False,
            flag_manual_review=bool(matches),
        )
        if matches:
            logger.warning(f"⚠️ Patient #{patient.id} flagged for review: {len(matches)} name match(es)")
        logger.info(f"✅ Patient created: #{patient.id} {patient.first_name} {patient.last_name}")
        return patient

    def link_to_user(self, patient_id: int, user_id: int) -> Patient:
        """Attach a staff-created record to a patient account"""
        patient = self.get_patient(patient_id)
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or user.role != "patient":
            raise FieldValidationError.single("user_id", "The selected user must be a patient account.")

        existing = self.repo.by_user(self.db, user.id)
        if existing and existing.id != patient.id:
            raise FieldValidationError.single("user_id", "This user is already linked to another patient record.")
        if patient.is_linked and patient.user_id and patient.user_id != user.id:
            raise HTTPException(status_code=422, detail="Patient record is already linked to another account.")

        patient = self.repo.save(self.db, patient, user_id=user.id, is_linked=True, flag_manual_review=False)
        logger.info(f"🔗 Patient #{patient.id} linked to user #{user.id}")
        return patient

    def link_self(self, user: User, data: LinkSelfRequest) -> Patient:
        """Create (or return) the current patient user's own record"""
        existing = self.repo.by_user(self.db, user.id)
        if existing:
            return existing

        matches = self.repo.find_potential_matches(self.db, data.first_name, data.last_name)
        fields = data.model_dump()
        if not fields.get("contact_number"):
            fields["contact_number"] = user.contact_number

        patient = self.repo.save(
            self.db,
            Patient(),
            **fields,
            user_id=user.id,
            is_linked=True,
            flag_manual_review=bool(matches),
        )
        logger.info(f"✅ Patient #{patient.id} self-linked by user #{user.id} (review={bool(matches)})")
        return patient

    def preferred_dentist(self, patient_id: int) -> dict:
        patient = self.get_patient(patient_id)
        dentist = resolve_preferred_dentist(self.db, patient.id)
        return {"patient_id": patient.id, "preferred_dentist": dentist_summary(dentist)}

    # ------------------------------------------------------------------
    # HMOs
    # ------------------------------------------------------------------

    def list_hmos(self, patient_id: int) -> list[PatientHmo]:
        self.get_patient(patient_id)
        return self.repo.list_hmos(self.db, patient_id)

    def create_hmo(self, patient_id: int, data: HmoCreate) -> PatientHmo:
        self.get_patient(patient_id)
        hmo = PatientHmo(patient_id=patient_id)
        if data.is_primary:
            self.repo.clear_primary_hmo(self.db, patient_id)
        return self.repo.save(self.db, hmo, **data.model_dump())

    def update_hmo(self, patient_id: int, hmo_id: int, data: HmoUpdate) -> PatientHmo:
        hmo = self._get_hmo(patient_id, hmo_id)
        fields = data.model_dump(exclude_unset=True)
        if fields.get("is_primary"):
            self.repo.clear_primary_hmo(self.db, patient_id, keep_id=hmo.id)
        return self.repo.save(self.db, hmo, **fields)

    def delete_hmo(self, patient_id: int, hmo_id: int) -> None:
        self.repo.delete(self.db, self._get_hmo(patient_id, hmo_id))

    def _get_hmo(self, patient_id: int, hmo_id: int) -> PatientHmo:
        hmo = self.repo.get_hmo(self.db, patient_id, hmo_id)
        if not hmo:
            raise HTTPException(status_code=404, detail="HMO not found")
        return hmo

    # ------------------------------------------------------------------
    # Patient records (admin lookup)
    # ------------------------------------------------------------------

    def search_records(
        self,
        query: Optional[str] = None,
        patient_id: Optional[int] = None,
        contact: Optional[str] = None,
        limit: int = 20,
        include_archived: bool = False,
    ) -> dict:
        builder = self.repo.search_query(self.db, query, include_archived=include_archived)
        if patient_id:
            builder = builder.filter(Patient.id == patient_id)
        if contact:
            builder = builder.filter(Patient.contact_number.ilike(f"%{contact}%"))
        return {"success": True, "data": [patient_summary(p) for p in builder.limit(limit).all()]}

    def record_profile(self, patient_id: int, include_archived: bool = False) -> dict:
        patient = self.get_patient(patient_id)
        if patient.archived_at and not include_archived:
            raise HTTPException(status_code=404, detail="Patient not found")
        return {"success": True, "data": patient_profile(patient)}

    def record_visits(
        self,
        patient_id: int,
        start_date=None,
        end_date=None,
        visit_type: Optional[str] = None,
        status: Optional[str] = None,
        dentist_schedule_id: Optional[int] = None,
        page: int = 1,
        per_page: Optional[int] = None,
        sort: str = "visit_date",
        direction: str = "desc",
    ) -> dict:
        patient = self.get_patient(patient_id)
        if start_date and end_date and end_date < start_date:
            raise FieldValidationError.single("end_date", "The end date must be a date after or equal to start date.")

        query = self.db.query(PatientVisit).filter(PatientVisit.patient_id == patient.id)
        if start_date:
            query = query.filter(PatientVisit.visit_date >= start_date)
        if end_date:
            query = query.filter(PatientVisit.visit_date <= end_date)
        if visit_type == "walk-in":
            query = query.filter(PatientVisit.appointment_id.is_(None))
        elif visit_type == "appointment":
            query = query.filter(PatientVisit.appointment_id.isnot(None))
        if status:
            query = query.filter(PatientVisit.status == status)
        if dentist_schedule_id:
            query = query.filter(PatientVisit.dentist_schedule_id == dentist_schedule_id)

        column = PatientVisit.created_at if sort == "created_at" else PatientVisit.visit_date
        query = query.order_by(column.asc() if direction == "asc" else column.desc(), PatientVisit.id.desc())

        result = paginate(query, page, clamp_per_page(per_page, minimum=5), self._visit_row)
        return {
            "success": True,
            "data": result["data"],
            "meta": {k: result[k] for k in ("current_page", "per_page", "total", "last_page")},
        }

    @staticmethod
    def _visit_row(visit: PatientVisit) -> dict:
        return {
            "id": visit.id,
            "visit_code": visit.visit_code,
            "visit_date": visit.visit_date.isoformat() if visit.visit_date else None,
            "start_time": visit.start_time.isoformat() if visit.start_time else None,
            "end_time": visit.end_time.isoformat() if visit.end_time else None,
            "status": visit.status,
            "service": {"id": visit.service.id, "name": visit.service.name} if visit.service else None,
            "visit_type": "appointment" if visit.appointment_id else "walk-in",
            "dentist": {
                "id": visit.dentist_schedule_id,
                "name": visit.dentist.dentist_name if visit.dentist else None,
                "code": visit.dentist.dentist_code if visit.dentist else None,
            },
        }
