"""Dentist router - FastAPI endpoints for dentist schedules"""

import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin, require_dentist
from ...database import get_db
from ...models import User
from .schemas import DentistScheduleCreate, DentistScheduleResponse, DentistScheduleUpdate
from .service import DentistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Dentists"])


def get_dentist_service(db: Session = Depends(get_db)) -> DentistService:
    """Dependency injection for DentistService"""
    return DentistService(db)


@router.get("/dentists", response_model=list[DentistScheduleResponse])
async def list_dentists(
    status: Optional[Literal["active", "inactive"]] = Query(None),
    current_user: User = Depends(get_current_user),
    service: DentistService = Depends(get_dentist_service),
):
    """All dentist schedules ordered by code (plain list, not paginated)"""
    return service.list_dentists(status)


@router.get("/dentists/available-for-date")
async def available_for_date(
    date: date = Query(...),
    current_user: User = Depends(get_current_user),
    service: DentistService = Depends(get_dentist_service),
):
    return service.available_for_date(date)


@router.get("/dentists/{dentist_id}", response_model=DentistScheduleResponse)
async def get_dentist(
    dentist_id: int,
    current_user: User = Depends(get_current_user),
    service: DentistService = Depends(get_dentist_service),
):
    return service.get_dentist(dentist_id)


@router.post("/dentists", response_model=DentistScheduleResponse, status_code=201)
async def create_dentist(
    data: DentistScheduleCreate,
    current_user: User = Depends(require_admin),
    service: DentistService = Depends(get_dentist_service),
):
    return service.create_dentist(data)


@router.put("/dentists/{dentist_id}", response_model=DentistScheduleResponse)
async def update_dentist(
    dentist_id: int,
    data: DentistScheduleUpdate,
    current_user: User = Depends(require_admin),
    service: DentistService = Depends(get_dentist_service),
):
    return service.update_dentist(dentist_id, data)


@router.delete("/dentists/{dentist_id}", status_code=204)
async def delete_dentist(
    dentist_id: int,
    current_user: User = Depends(require_admin),
    service: DentistService = Depends(get_dentist_service),
):
    service.delete_dentist(dentist_id)
    return Response(status_code=204)


@router.get("/dentist/my-schedule", response_model=DentistScheduleResponse)
async def my_schedule(
    current_user: User = Depends(require_dentist),
    service: DentistService = Depends(get_dentist_service),
):
    """Schedule row of the logged-in dentist (matched by email)"""
    return service.my_schedule(current_user)
