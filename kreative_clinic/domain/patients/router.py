"""Patients router - FastAPI endpoints for patient records, archive and no-show management"""

import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin, require_patient, require_staff
from ...database import get_db
from ...models import User
from .archive_service import ArchivedPatientService
from .manager_service import PatientManagerService, booking_restrictions
from .repository import PatientRepository
from .schemas import (
    BlockRequest,
    HmoCreate,
    HmoResponse,
    HmoUpdate,
    LinkSelfRequest,
    LinkUserRequest,
    NoteRequest,
    PatientCreate,
    PatientResponse,
    UnblockRequest,
    WarningRequest,
)
from .service import PatientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Patients"])


def get_patient_service(db: Session = Depends(get_db)) -> PatientService:
    """Dependency injection for PatientService"""
    return PatientService(db)


def get_archive_service(db: Session = Depends(get_db)) -> ArchivedPatientService:
    return ArchivedPatientService(db)


def get_manager_service(db: Session = Depends(get_db)) -> PatientManagerService:
    return PatientManagerService(db)


def _ensure_hmo_access(current_user: User, patient_id: int, db: Session) -> None:
    """Staff manage any patient's HMOs; patients only their own"""
    if current_user.role in ("admin", "staff"):
        return
    if current_user.role == "patient":
        patient = PatientRepository.by_user(db, current_user.id)
        if patient and patient.id == patient_id:
            return
    raise HTTPException(status_code=403, detail="Forbidden.")


# ============================================================================
# PATIENTS
# ============================================================================


@router.get("/patients")
async def list_patients(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_staff),
    service: PatientService = Depends(get_patient_service),
):
    return service.list_patients(search, page, per_page)


@router.post("/patients", response_model=PatientResponse, status_code=201)
async def create_patient(
    data: PatientCreate,
    current_user: User = Depends(require_staff),
    service: PatientService = Depends(get_patient_service),
):
    return service.create_patient(data)


@router.post("/patients/link-self", response_model=PatientResponse)
async def link_self(
    data: LinkSelfRequest,
    current_user: User = Depends(require_patient),
    service: PatientService = Depends(get_patient_service),
):
    """Create or return the patient record linked to the current account"""
    return service.link_self(current_user, data)


@router.post("/patients/{patient_id}/link", response_model=PatientResponse)
async def link_patient(
    patient_id: int,
    data: LinkUserRequest,
    current_user: User = Depends(require_staff),
    service: PatientService = Depends(get_patient_service),
):
    return service.link_to_user(patient_id, data.user_id)


@router.get("/patients/{patient_id}/preferred-dentist")
async def preferred_dentist(
    patient_id: int,
    current_user: User = Depends(require_staff),
    service: PatientService = Depends(get_patient_service),
):
    return service.preferred_dentist(patient_id)


# HMOs


@router.get("/patients/{patient_id}/hmos", response_model=list[HmoResponse])
async def list_hmos(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PatientService = Depends(get_patient_service),
):
    _ensure_hmo_access(current_user, patient_id, db)
    return service.list_hmos(patient_id)


@router.post("/patients/{patient_id}/hmos", response_model=HmoResponse, status_code=201)
async def create_hmo(
    patient_id: int,
    data: HmoCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PatientService = Depends(get_patient_service),
):
    _ensure_hmo_access(current_user, patient_id, db)
    return service.create_hmo(patient_id, data)


@router.put("/patients/{patient_id}/hmos/{hmo_id}", response_model=HmoResponse)
async def update_hmo(
    patient_id: int,
    hmo_id: int,
    data: HmoUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PatientService = Depends(get_patient_service),
):
    _ensure_hmo_access(current_user, patient_id, db)
    return service.update_hmo(patient_id, hmo_id, data)


@router.delete("/patients/{patient_id}/hmos/{hmo_id}", status_code=204)
async def delete_hmo(
    patient_id: int,
    hmo_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PatientService = Depends(get_patient_service),
):
    _ensure_hmo_access(current_user, patient_id, db)
    service.delete_hmo(patient_id, hmo_id)
    return Response(status_code=204)


@router.get("/appointment/check-blocked-status")
async def check_blocked_status(
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    """Booking restrictions for the current patient"""
    patient = PatientRepository.by_user(db, current_user.id)
    return booking_restrictions(db, patient.id if patient else None)


# ============================================================================
# PATIENT RECORDS (ADMIN)
# ============================================================================


@router.get("/admin/patient-records/search")
async def search_patient_records(
    query: Optional[str] = Query(None, max_length=100),
    patient_id: Optional[int] = Query(None, ge=1),
    contact: Optional[str] = Query(None, max_length=30),
    limit: int = Query(20, ge=1, le=50),
    include_archived: bool = Query(False),
    current_user: User = Depends(require_admin),
    service: PatientService = Depends(get_patient_service),
):
    return service.search_records(query, patient_id, contact, limit, include_archived)


@router.get("/admin/patient-records/{patient_id}")
async def patient_record(
    patient_id: int,
    include_archived: bool = Query(False),
    current_user: User = Depends(require_admin),
    service: PatientService = Depends(get_patient_service),
):
    return service.record_profile(patient_id, include_archived)


@router.get("/admin/patient-records/{patient_id}/visits")
async def patient_record_visits(
    patient_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    visit_type: Optional[Literal["walk-in", "appointment"]] = Query(None),
    status: Optional[str] = Query(None),
    dentist_schedule_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    sort: Literal["visit_date", "created_at"] = Query("visit_date"),
    direction: Literal["asc", "desc"] = Query("desc"),
    current_user: User = Depends(require_admin),
    service: PatientService = Depends(get_patient_service),
):
    return service.record_visits(
        patient_id, start_date, end_date, visit_type, status, dentist_schedule_id, page, per_page, sort, direction
    )


# ============================================================================
# ARCHIVED PATIENTS (ADMIN)
# ============================================================================


@router.get("/admin/archived-patients")
async def list_archived_patients(
    search: Optional[str] = Query(None),
    archived_before: Optional[date] = Query(None),
    archived_after: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    service: ArchivedPatientService = Depends(get_archive_service),
):
    return service.list_archived(search, archived_before, archived_after, page, per_page)


@router.post("/admin/archived-patients/{patient_id}/reactivate")
async def reactivate_patient(
    patient_id: int,
    current_user: User = Depends(require_admin),
    service: ArchivedPatientService = Depends(get_archive_service),
):
    return service.reactivate(patient_id, current_user)


# ============================================================================
# PATIENT MANAGER (ADMIN)
# ============================================================================


@router.get("/admin/patient-manager")
async def list_patient_managers(
    status: Optional[Literal["active", "warning", "blocked"]] = Query(None),
    min_no_shows: Optional[int] = Query(None, ge=0),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.list_managers(status, min_no_shows, search, page, per_page)


@router.get("/admin/patient-manager/statistics")
async def patient_manager_statistics(
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.statistics()


@router.get("/admin/patient-manager/{patient_id}")
async def show_patient_manager(
    patient_id: int,
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.show(patient_id)


@router.get("/admin/patient-manager/{patient_id}/no-show-history")
async def no_show_history(
    patient_id: int,
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.no_show_history(patient_id, page, per_page)


@router.post("/admin/patient-manager/{patient_id}/send-warning")
async def send_warning(
    patient_id: int,
    data: WarningRequest,
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.send_warning(patient_id, data.message, current_user)


@router.post("/admin/patient-manager/{patient_id}/block")
async def block_patient(
    patient_id: int,
    data: BlockRequest,
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.block(patient_id, data.reason, data.block_type, current_user)


@router.post("/admin/patient-manager/{patient_id}/unblock")
async def unblock_patient(
    patient_id: int,
    data: UnblockRequest,
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.unblock(patient_id, data.reason, current_user)


@router.post("/admin/patient-manager/{patient_id}/add-note")
async def add_note(
    patient_id: int,
    data: NoteRequest,
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.add_note(patient_id, data.note, current_user)


@router.post("/admin/patient-manager/{patient_id}/reset-no-shows")
async def reset_no_shows(
    patient_id: int,
    current_user: User = Depends(require_admin),
    service: PatientManagerService = Depends(get_manager_service),
):
    return service.reset_no_shows(patient_id, current_user)
