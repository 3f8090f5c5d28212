"""Patient feedback repository"""

from typing import Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from ...models_visit import PatientFeedback, PatientVisit


class FeedbackRepository:
    @staticmethod
    def get(db: Session, feedback_id: int) -> Optional[PatientFeedback]:
        return db.query(PatientFeedback).filter(PatientFeedback.id == feedback_id).first()

    @staticmethod
    def visit_for_patient(db: Session, visit_id: int, patient_id: int) -> Optional[PatientVisit]:
        return (
            db.query(PatientVisit)
            .filter(PatientVisit.id == visit_id, PatientVisit.patient_id == patient_id)
            .first()
        )

    @staticmethod
    def for_patient_query(db: Session, patient_id: int) -> Query:
        return (
            db.query(PatientFeedback)
            .filter(PatientFeedback.patient_id == patient_id)
            .order_by(PatientFeedback.submitted_at.desc(), PatientFeedback.id.desc())
        )

    @staticmethod
    def for_dentist_query(
        db: Session,
        dentist: Union[int, str],
        has_comment: Optional[str] = None,
        rating: Optional[int] = None,
    ) -> Query:
        query = db.query(PatientFeedback)
        if dentist == "unassigned":
            query = query.filter(PatientFeedback.dentist_schedule_id.is_(None))
        else:
            query = query.filter(PatientFeedback.dentist_schedule_id == int(dentist))

        if has_comment == "with":
            query = query.filter(PatientFeedback.comment.isnot(None), PatientFeedback.comment != "")
        elif has_comment == "without":
            query = query.filter(or_(PatientFeedback.comment.is_(None), PatientFeedback.comment == ""))

        if rating is not None:
            query = query.filter(PatientFeedback.dentist_rating == rating)
        return query.order_by(PatientFeedback.submitted_at.desc(), PatientFeedback.id.desc())

    @staticmethod
    def averages(query: Query) -> tuple:
        """(avg dentist rating, avg survey score, count) over a filtered query"""
        return query.order_by(None).with_entities(
            func.avg(PatientFeedback.dentist_rating),
            func.avg(PatientFeedback.average_score),
            func.count(PatientFeedback.id),
        ).one()
