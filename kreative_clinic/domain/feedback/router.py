"""Patient feedback router - visit ratings for patients and the admin dentist view"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_admin, require_patient
from ...database import get_db
from ...models import User
from .schemas import FeedbackCreate, FeedbackPayload
from .service import FeedbackService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Feedback"])


def get_feedback_service(db: Session = Depends(get_db)) -> FeedbackService:
    """Dependency injection for FeedbackService"""
    return FeedbackService(db)


@router.get("/patient/feedback")
async def my_feedback(
    page: int = Query(1, ge=1),
    current_user: User = Depends(require_patient),
    service: FeedbackService = Depends(get_feedback_service),
):
    return service.my_feedback(current_user, page)


@router.get("/patient/feedback/{visit_id}")
async def feedback_form(
    visit_id: int,
    current_user: User = Depends(require_patient),
    service: FeedbackService = Depends(get_feedback_service),
):
    return service.form(current_user, visit_id)


@router.post("/patient/feedback", status_code=201)
async def submit_feedback(
    data: FeedbackCreate,
    current_user: User = Depends(require_patient),
    service: FeedbackService = Depends(get_feedback_service),
):
    return service.submit(current_user, data)


@router.put("/patient/feedback/{feedback_id}")
async def update_feedback(
    feedback_id: int,
    data: FeedbackPayload,
    current_user: User = Depends(require_patient),
    service: FeedbackService = Depends(get_feedback_service),
):
    return service.update(current_user, feedback_id, data)


@router.get("/admin/dentists/{dentist}/feedback")
async def dentist_feedback(
    dentist: str,
    has_comment: Literal["all", "with", "without"] = Query("all"),
    rating: Optional[int] = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    service: FeedbackService = Depends(get_feedback_service),
):
    """Feedback for one dentist, or 'unassigned' for visits without a dentist"""
    if dentist != "unassigned" and not dentist.isdigit():
        raise HTTPException(status_code=404, detail="Dentist not found")
    return service.dentist_feedback(dentist, has_comment, rating, page, per_page)
