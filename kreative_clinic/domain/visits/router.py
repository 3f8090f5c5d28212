"""Visits router - FastAPI endpoints for the visit tracker and payment records"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...auth import require_roles, require_staff
from ...database import get_db
from ...models import User
from .schemas import (
    CompleteVisitRequest,
    DentistNotesRequest,
    LinkExistingRequest,
    MedicalHistoryRequest,
    SendVisitCodeRequest,
    UpdateVisitPatientRequest,
    VisitCreate,
    VisitRejectRequest,
    ViewNotesRequest,
)
from .service import VisitService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Visits"])

require_clinician = require_roles("admin", "staff", "dentist")


def get_visit_service(db: Session = Depends(get_db)) -> VisitService:
    """Dependency injection for VisitService"""
    return VisitService(db)


# ============================================================================
# VISIT TRACKER
# ============================================================================


@router.get("/visits")
async def list_visits(
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    """Pending visits plus the visits completed today"""
    return service.tracker()


@router.get("/visits/stats")
async def visit_stats(
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.stats()


@router.post("/visits")
async def start_visit(
    data: VisitCreate,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    if data.visit_type == "walkin":
        return JSONResponse(status_code=201, content=service.start_walkin())
    body, status_code = service.start_from_appointment(data.reference_code)
    return JSONResponse(status_code=status_code, content=body)


@router.post("/visits/send-visit-code")
async def send_visit_code(
    data: SendVisitCodeRequest,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.send_visit_code(data.visit_id, data.dentist_schedule_id, current_user)


@router.get("/visits/{visit_id}/medical-history")
async def get_medical_history(
    visit_id: int,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.medical_history(visit_id)


@router.post("/visits/{visit_id}/medical-history")
async def submit_medical_history(
    visit_id: int,
    data: MedicalHistoryRequest,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.submit_medical_history(visit_id, data, current_user)


@router.post("/visits/{visit_id}/finish")
async def finish_visit(
    visit_id: int,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.finish(visit_id)


@router.post("/visits/{visit_id}/reject")
async def reject_visit(
    visit_id: int,
    data: VisitRejectRequest,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.reject(visit_id, data.reason, data.offered_appointment)


@router.post("/visits/{visit_id}/complete-with-details")
async def complete_visit(
    visit_id: int,
    data: CompleteVisitRequest,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.complete_with_details(visit_id, data, current_user)


@router.post("/visits/{visit_id}/save-dentist-notes")
async def save_dentist_notes(
    visit_id: int,
    data: DentistNotesRequest,
    current_user: User = Depends(require_clinician),
    service: VisitService = Depends(get_visit_service),
):
    """Save notes while the visit is still in progress"""
    return service.save_dentist_notes(visit_id, data, current_user)


@router.get("/visits/{visit_id}/dentist-notes")
async def get_dentist_notes(
    visit_id: int,
    current_user: User = Depends(require_clinician),
    service: VisitService = Depends(get_visit_service),
):
    return service.dentist_notes(visit_id, current_user)


@router.post("/visits/{visit_id}/view-notes")
async def view_notes(
    visit_id: int,
    data: ViewNotesRequest,
    current_user: User = Depends(require_clinician),
    service: VisitService = Depends(get_visit_service),
):
    """Decrypt notes; the caller re-enters their password"""
    return service.view_notes(visit_id, data.password, current_user)


@router.put("/visits/{visit_id}/update-patient")
async def update_visit_patient(
    visit_id: int,
    data: UpdateVisitPatientRequest,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.update_patient(visit_id, data)


@router.get("/visits/{visit_id}/potential-matches")
async def potential_matches(
    visit_id: int,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.potential_matches(visit_id)


@router.post("/visits/{visit_id}/link-existing")
async def link_existing_patient(
    visit_id: int,
    data: LinkExistingRequest,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    """Move a walk-in visit onto an existing patient record"""
    return service.link_existing(visit_id, data.target_patient_id, data.service_id)


# ============================================================================
# PAYMENT RECORDS
# ============================================================================


@router.get("/staff/payment-records")
async def payment_records(
    search: Optional[str] = Query(None),
    appointment_date: Optional[date] = Query(None),
    visit_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.payment_records(search, appointment_date, visit_date, page, per_page)


@router.get("/staff/payment-records/{payment_id}/receipt-data")
async def payment_receipt_data(
    payment_id: int,
    current_user: User = Depends(require_staff),
    service: VisitService = Depends(get_visit_service),
):
    return service.receipt_data(payment_id)
