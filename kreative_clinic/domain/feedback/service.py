"""
Patient feedback service
Patients rate completed visits once, and may edit within the edit window
"""

import logging
from datetime import timedelta
from typing import Optional, Union

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import FEEDBACK_EDIT_WINDOW_HOURS
from ...models import Patient, User
from ...models_visit import PatientFeedback
from ...shared.pagination import clamp_per_page, paginate
from ...shared.timeutils import clinic_now
from ..patients.repository import PatientRepository
from .repository import FeedbackRepository
from .rules import (
    QUESTIONS,
    anonymize_name,
    average_score,
    eligibility_message,
    feedback_editable,
    sentiment,
    visit_eligibility,
)
from .schemas import FeedbackCreate, FeedbackPayload

logger = logging.getLogger(__name__)


def _iso(value):
    return value.isoformat() if value else None


def serialize_feedback(feedback: PatientFeedback) -> dict:
    visit = feedback.visit
    return {
        "id": feedback.id,
        "patient_visit_id": feedback.patient_visit_id,
        "service_name": visit.service.name if visit and visit.service else None,
        "dentist_schedule_id": feedback.dentist_schedule_id,
        "dentist_name": feedback.dentist.dentist_name if feedback.dentist else None,
        "answers": feedback.answers,
        "average_score": feedback.average_score,
        "dentist_rating": feedback.dentist_rating,
        "comment": feedback.comment,
        "submitted_at": _iso(feedback.submitted_at),
        "last_edited_at": _iso(feedback.last_edited_at),
        "editable_until": _iso(feedback.editable_until),
        "locked_at": _iso(feedback.locked_at),
        "locked_reason": feedback.locked_reason,
        "is_editable": feedback_editable(feedback),
    }


def serialize_dentist_feedback(feedback: PatientFeedback) -> dict:
    patient = feedback.patient
    visit = feedback.visit
    return {
        "id": feedback.id,
        "patient_name": anonymize_name(
            patient.first_name if patient else None, patient.last_name if patient else None
        ),
        "service_name": visit.service.name if visit and visit.service else None,
        "dentist_rating": feedback.dentist_rating,
        "average_score": feedback.average_score,
        "comment": feedback.comment,
        "answers": feedback.answers,
        "submitted_at": _iso(feedback.submitted_at),
        "sentiment": sentiment(feedback.dentist_rating),
    }


class FeedbackService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = FeedbackRepository()

    def _patient(self, user: User) -> Patient:
        patient = PatientRepository.by_user(self.db, user.id)
        if not patient:
            raise HTTPException(status_code=403, detail="Patient profile required.")
        return patient

    # ------------------------------------------------------------------
    # Patient side
    # ------------------------------------------------------------------

    def my_feedback(self, user: User, page: int) -> dict:
        patient = self._patient(user)
        return paginate(self.repo.for_patient_query(self.db, patient.id), page, 10, serialize_feedback)

    def form(self, user: User, visit_id: int) -> dict:
        """Questions, any existing feedback and the visit's rating eligibility"""
        patient = self._patient(user)
        visit = self.repo.visit_for_patient(self.db, visit_id, patient.id)
        if not visit:
            raise HTTPException(status_code=404, detail="Visit not found.")

        feedback = visit.feedback
        eligibility = visit_eligibility(visit, feedback is not None)
        return {
            "questions": [{"key": key, "label": label} for key, label in QUESTIONS.items()],
            "feedback": serialize_feedback(feedback) if feedback else None,
            "eligibility": {
                "can_rate": eligibility["can_rate"],
                "reason": eligibility["reason"],
                "rating_window_expires_at": _iso(eligibility["deadline"]),
            },
        }

    def submit(self, user: User, data: FeedbackCreate) -> dict:
        patient = self._patient(user)
        visit = self.repo.visit_for_patient(self.db, data.patient_visit_id, patient.id)
        if not visit:
            raise HTTPException(status_code=404, detail="Visit not found.")

        eligibility = visit_eligibility(visit, visit.feedback is not None)
        if not eligibility["can_rate"]:
            raise HTTPException(
                status_code=422,
                detail={"message": eligibility_message(eligibility["reason"]), "reason": eligibility["reason"]},
            )

        now = clinic_now()
        feedback = PatientFeedback(
            patient_visit_id=visit.id,
            patient_id=patient.id,
            dentist_schedule_id=visit.dentist_schedule_id,
            answers=data.answers,
            average_score=average_score(data.answers),
            dentist_rating=data.dentist_rating,
            comment=data.comment,
            submitted_at=now,
            last_edited_at=now,
            editable_until=now + timedelta(hours=FEEDBACK_EDIT_WINDOW_HOURS),
        )
        self.db.add(feedback)
        self.db.commit()
        self.db.refresh(feedback)
        logger.info(f"✅ Feedback #{feedback.id} submitted for visit #{visit.id}")
        return serialize_feedback(feedback)

    def update(self, user: User, feedback_id: int, data: FeedbackPayload) -> dict:
        patient = self._patient(user)
        feedback = self.repo.get(self.db, feedback_id)
        if not feedback or feedback.patient_id != patient.id:
            raise HTTPException(status_code=404, detail="Feedback not found.")

        if not feedback_editable(feedback):
            if feedback.locked_at is None:
                feedback.locked_at = clinic_now()
                feedback.locked_reason = feedback.locked_reason or "edit_window_elapsed"
                self.db.commit()
                logger.info(f"🔒 Feedback #{feedback.id} locked after its edit window")
            raise HTTPException(status_code=422, detail="Feedback can no longer be edited.")

        feedback.answers = data.answers
        feedback.average_score = average_score(data.answers)
        feedback.dentist_rating = data.dentist_rating
        feedback.comment = data.comment
        feedback.last_edited_at = clinic_now()
        self.db.commit()
        self.db.refresh(feedback)
        return serialize_feedback(feedback)

    # ------------------------------------------------------------------
    # Admin side
    # ------------------------------------------------------------------

    def dentist_feedback(
        self,
        dentist: Union[int, str],
        has_comment: Optional[str],
        rating: Optional[int],
        page: int,
        per_page: Optional[int],
    ) -> dict:
        query = self.repo.for_dentist_query(self.db, dentist, has_comment, rating)
        result = paginate(
            query, page, clamp_per_page(per_page, default=10, minimum=5, maximum=50), serialize_dentist_feedback
        )

        avg_rating, avg_score, total = self.repo.averages(query)
        result["summary"] = {
            "total": total,
            "average_dentist_rating": round(float(avg_rating), 2) if avg_rating is not None else None,
            "average_score": round(float(avg_score), 2) if avg_score is not None else None,
        }
        return result
