"""Appointments router - FastAPI endpoints for booking, staff decisions and reminders"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_patient, require_roles, require_staff
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import (
    AppointmentCreate,
    CancelRequest,
    RejectRequest,
    ReminderRequest,
    RescheduleRequest,
    StaffAppointmentCreate,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Appointments"])

booking_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="booking")


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


# ============================================================================
# PATIENT BOOKING
# ============================================================================


@router.get("/appointment/available-slots")
async def available_slots(
    date: date = Query(...),
    service_id: Optional[int] = Query(None),
    teeth_count: Optional[int] = Query(None, ge=1, le=32),
    patient_id: Optional[int] = Query(None),
    honor_preferred_dentist: bool = Query(True),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Valid 30-minute start times for a date, given a service duration"""
    if patient_id and current_user.role not in ("admin", "staff"):
        patient_id = None
    return service.slots(date, service_id, teeth_count, patient_id, honor_preferred_dentist, current_user)


@router.post("/appointment", status_code=201, dependencies=[Depends(booking_rate_limit)])
async def book_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(require_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.book(current_user, data)


@router.post("/appointment/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: int,
    data: Optional[CancelRequest] = None,
    current_user: User = Depends(require_roles("patient", "admin")),
    service: AppointmentService = Depends(get_appointment_service),
):
    data = data or CancelRequest()
    return service.cancel(appointment_id, current_user, data.cancellation_reason, data.notes)


@router.post("/appointment/{appointment_id}/reschedule")
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    current_user: User = Depends(require_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reschedule(
        appointment_id, current_user, data.date, data.start_time, data.honor_preferred_dentist
    )


@router.get("/user-appointments")
async def user_appointments(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    current_user: User = Depends(require_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.user_appointments(current_user, start_date, end_date, page)


# ============================================================================
# REFERENCE CODES
# ============================================================================


@router.get("/appointment/resolve/{code}")
@router.get("/appointments/resolve/{code}")
async def resolve_reference_code(
    code: str,
    current_user: User = Depends(require_roles("admin", "staff", "dentist")),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Resolve an approved appointment's reference code for check-in"""
    return service.resolve_code(code)


@router.get("/appointments/resolve-exact")
async def resolve_exact(
    code: str = Query(..., min_length=8, max_length=8),
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.resolve_exact(code, current_user)


# ============================================================================
# STAFF
# ============================================================================


@router.get("/appointments")
async def list_appointments(
    status: Optional[str] = Query(None),
    date: Optional[date] = Query(None),
    patient_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_appointments(status, date, patient_id, page, per_page)


@router.get("/appointments/remindable")
async def remindable_appointments(
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Approved appointments one or two days ahead that have not been reminded"""
    return service.remindable()


@router.post("/appointments/staff-create", status_code=201)
async def staff_create_appointment(
    data: StaffAppointmentCreate,
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.staff_create(current_user, data)


@router.post("/appointments/{appointment_id}/approve")
async def approve_appointment(
    appointment_id: int,
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.approve(appointment_id, current_user)


@router.post("/appointments/{appointment_id}/reject")
async def reject_appointment(
    appointment_id: int,
    data: RejectRequest,
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reject(appointment_id, data.note, data.cancellation_reason, current_user)


@router.post("/appointments/{appointment_id}/send-reminder")
async def send_reminder(
    appointment_id: int,
    data: Optional[ReminderRequest] = None,
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    data = data or ReminderRequest()
    if data.edited and not (data.message or "").strip():
        raise HTTPException(status_code=422, detail="Message is required when the reminder is edited.")
    return service.send_reminder(appointment_id, data.message, data.edited, current_user)


@router.get("/staff/today-time-blocks")
async def today_time_blocks(
    current_user: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.today_time_blocks()
