"""Clinic calendar router - FastAPI endpoints for weekly hours and date overrides"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from .schemas import (
    CalendarEntryCreate,
    CalendarEntryResponse,
    CalendarEntryUpdate,
    WeeklyScheduleResponse,
    WeeklyScheduleUpdate,
)
from .service import ClinicCalendarService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Clinic Calendar"])


def get_calendar_service(db: Session = Depends(get_db)) -> ClinicCalendarService:
    """Dependency injection for ClinicCalendarService"""
    return ClinicCalendarService(db)


# ============================================================================
# WEEKLY SCHEDULE
# ============================================================================


@router.get("/weekly-schedule", response_model=list[WeeklyScheduleResponse])
async def get_weekly_schedule(
    current_user: User = Depends(get_current_user),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    return service.get_weekly_schedule()


@router.patch("/weekly-schedule/{schedule_id}", response_model=WeeklyScheduleResponse)
async def update_weekly_schedule(
    schedule_id: int,
    data: WeeklyScheduleUpdate,
    current_user: User = Depends(require_admin),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    return service.update_weekly(schedule_id, data)


# ============================================================================
# DATE OVERRIDES
# ============================================================================


@router.get("/clinic-calendar", response_model=list[CalendarEntryResponse])
async def list_calendar_entries(
    current_user: User = Depends(get_current_user),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    return service.list_overrides()


@router.get("/clinic-calendar/resolve")
async def resolve_calendar_date(
    date: date = Query(...),
    current_user: User = Depends(get_current_user),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    """Return the override for the date if one exists, else the weekly default"""
    return service.resolve(date)


@router.post("/clinic-calendar", response_model=CalendarEntryResponse, status_code=201)
async def create_calendar_entry(
    data: CalendarEntryCreate,
    current_user: User = Depends(require_admin),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    return service.create_override(data)


@router.put("/clinic-calendar/{entry_id}", response_model=CalendarEntryResponse)
async def update_calendar_entry(
    entry_id: int,
    data: CalendarEntryUpdate,
    current_user: User = Depends(require_admin),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    return service.update_override(entry_id, data)


@router.delete("/clinic-calendar/{entry_id}", status_code=204)
async def delete_calendar_entry(
    entry_id: int,
    current_user: User = Depends(require_admin),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    service.delete_override(entry_id)
    return Response(status_code=204)


@router.get("/clinic-schedule")
async def get_clinic_schedule(
    date: date = Query(...),
    current_user: User = Depends(get_current_user),
    service: ClinicCalendarService = Depends(get_calendar_service),
):
    """Resolved snapshot (hours, dentists, capacity) plus the 30-minute blocks"""
    return service.schedule_for_date(date)
