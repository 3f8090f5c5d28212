"""Refund request repository - Database operations for refund requests"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Query, Session, joinedload

from ...models import RefundRequest

OPEN_STATUSES = ("pending", "approved", "processed")


class RefundRepository:
    """Repository for refund request database operations"""

    @staticmethod
    def get(db: Session, refund_id: int) -> Optional[RefundRequest]:
        return (
            db.query(RefundRequest)
            .options(joinedload(RefundRequest.patient), joinedload(RefundRequest.appointment))
            .filter(RefundRequest.id == refund_id)
            .first()
        )

    @staticmethod
    def list_query(db: Session, status: Optional[str] = None) -> Query:
        query = db.query(RefundRequest).options(
            joinedload(RefundRequest.patient), joinedload(RefundRequest.appointment)
        )
        if status:
            query = query.filter(RefundRequest.status == status)
        return query.order_by(RefundRequest.requested_at.desc(), RefundRequest.id.desc())

    @staticmethod
    def for_appointment(db: Session, appointment_id: int) -> Optional[RefundRequest]:
        return db.query(RefundRequest).filter(RefundRequest.appointment_id == appointment_id).first()

    @staticmethod
    def overdue(db: Session, now: datetime) -> list[RefundRequest]:
        return (
            db.query(RefundRequest)
            .filter(
                RefundRequest.status.in_(OPEN_STATUSES),
                RefundRequest.deadline_at.isnot(None),
                RefundRequest.deadline_at < now,
            )
            .order_by(RefundRequest.deadline_at.asc())
            .all()
        )

    @staticmethod
    def save(db: Session, entity: RefundRequest, **fields) -> RefundRequest:
        for key, value in fields.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity
