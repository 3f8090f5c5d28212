"""
Refund request service
Lifecycle: pending -> approved -> processed -> completed, or pending -> rejected
"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import REFUND_CANCELLATION_FEE, REFUND_DEADLINE_DAYS
from ...models import Appointment, Payment, RefundRequest, User
from ...shared.errors import FieldValidationError
from ...shared.timeutils import clinic_now, clinic_today, end_of_day
from .repository import OPEN_STATUSES, RefundRepository

logger = logging.getLogger(__name__)

# action: (required status, new status, timestamp column)
TRANSITIONS = {
    "approve": ("pending", "approved", "approved_at"),
    "reject": ("pending", "rejected", "rejected_at"),
    "process": ("approved", "processed", "processed_at"),
    "complete": ("processed", "completed", "completed_at"),
}


def minimum_extend_deadline_date(refund: RefundRequest, today: Optional[date] = None) -> date:
    today = today or clinic_today()
    base = today
    if refund.deadline_at and refund.deadline_at.date() > today:
        base = refund.deadline_at.date()
    return base + timedelta(days=1)


def serialize_refund(refund: RefundRequest) -> dict:
    patient = refund.patient
    appointment = refund.appointment

    def iso(value):
        return value.isoformat() if value else None

    return {
        "id": refund.id,
        "patient_id": refund.patient_id,
        "patient_name": f"{patient.first_name} {patient.last_name}".strip() if patient else None,
        "appointment_id": refund.appointment_id,
        "appointment_date": iso(appointment.date) if appointment else None,
        "appointment_time_slot": appointment.time_slot if appointment else None,
        "service_name": appointment.service.name if appointment and appointment.service else None,
        "payment_id": refund.payment_id,
        "original_amount": refund.original_amount,
        "cancellation_fee": refund.cancellation_fee,
        "refund_amount": refund.refund_amount,
        "reason": refund.reason,
        "status": refund.status,
        "admin_notes": refund.admin_notes,
        "requested_at": iso(refund.requested_at),
        "approved_at": iso(refund.approved_at),
        "rejected_at": iso(refund.rejected_at),
        "processed_at": iso(refund.processed_at),
        "completed_at": iso(refund.completed_at),
        "deadline_at": iso(refund.deadline_at),
        "deadline_extended_at": iso(refund.deadline_extended_at),
        "deadline_extension_reason": refund.deadline_extension_reason,
        "minimum_extend_deadline_date": minimum_extend_deadline_date(refund).isoformat(),
    }


def open_refund_request(db: Session, appointment: Appointment, payment: Payment, reason: str) -> RefundRequest:
    """Stage a pending refund for a paid appointment that was canceled (no commit)"""
    now = clinic_now()
    original = float(payment.amount_paid or payment.amount_due or 0)
    fee = min(float(REFUND_CANCELLATION_FEE), original)
    refund = RefundRequest(
        patient_id=appointment.patient_id,
        appointment_id=appointment.id,
        payment_id=payment.id,
        original_amount=original,
        cancellation_fee=fee,
        refund_amount=round(original - fee, 2),
        reason=reason,
        status="pending",
        requested_at=now,
        deadline_at=end_of_day((now + timedelta(days=REFUND_DEADLINE_DAYS)).date()),
    )
    db.add(refund)
    logger.info(f"📥 Refund request staged for appointment #{appointment.id}: PHP {refund.refund_amount:.2f}")
    return refund


class RefundService:
    """Service layer for refund request management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = RefundRepository()

    def list_requests(self, status: Optional[str] = None) -> list[dict]:
        return [serialize_refund(r) for r in self.repo.list_query(self.db, status).all()]

    def get_request(self, refund_id: int) -> RefundRequest:
        refund = self.repo.get(self.db, refund_id)
        if not refund:
            raise HTTPException(status_code=404, detail="Refund request not found")
        return refund

    def transition(self, refund_id: int, action: str, admin_notes: Optional[str], user: User) -> dict:
        refund = self.get_request(refund_id)
        required, target, stamp_field = TRANSITIONS[action]

        if refund.status != required:
            raise HTTPException(
                status_code=422,
                detail=f"Refund request cannot be {target} from status {refund.status}.",
            )

        fields = {"status": target, stamp_field: clinic_now()}
        if admin_notes is not None:
            fields["admin_notes"] = admin_notes
        if action in ("process", "complete"):
            fields["processed_by"] = user.id

        refund = self.repo.save(self.db, refund, **fields)
        logger.info(f"✅ Refund request #{refund.id} {target} by user #{user.id}")
        return {"message": f"Refund request {target}.", "refund_request": serialize_refund(refund)}

    def extend_deadline(self, refund_id: int, new_deadline: date, reason: str, user: User) -> dict:
        refund = self.get_request(refund_id)
        if refund.status not in OPEN_STATUSES:
            raise HTTPException(status_code=422, detail="Only open refund requests can have their deadline extended.")

        minimum = minimum_extend_deadline_date(refund)
        if new_deadline < minimum:
            raise FieldValidationError.single(
                "new_deadline", f"The new deadline must be on or after {minimum.isoformat()}."
            )

        refund = self.repo.save(
            self.db,
            refund,
            deadline_at=end_of_day(new_deadline),
            deadline_extended_at=clinic_now(),
            deadline_extension_reason=reason,
            deadline_notified_at=None,
        )
        logger.info(f"🔧 Refund request #{refund.id} deadline extended to {new_deadline} by user #{user.id}")
        return {"message": "Refund deadline extended.", "refund_request": serialize_refund(refund)}
