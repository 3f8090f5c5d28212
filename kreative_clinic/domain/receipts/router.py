"""Receipts router - PDF receipts for appointments and visits"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ...auth import require_roles
from ...database import get_db
from ...models import Appointment, User
from ...models_visit import PatientVisit
from ..patients.repository import PatientRepository
from .builder import ReceiptPDFGenerator, appointment_receipt_data, visit_receipt_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/receipts", tags=["Receipts"])

receipt_roles = require_roles("admin", "staff", "patient")


def _ensure_owner(db: Session, current_user: User, patient_id: int) -> None:
    """Patients may only download receipts for their own records"""
    if current_user.role != "patient":
        return
    patient = PatientRepository.by_user(db, current_user.id)
    if not patient or patient.id != patient_id:
        logger.warning(f"⚠️ User {current_user.id} denied receipt for patient #{patient_id}")
        raise HTTPException(status_code=403, detail="Forbidden.")


def _pdf_response(data: dict) -> Response:
    pdf_bytes = ReceiptPDFGenerator(data).generate()
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="receipt-{data["receipt_number"]}.pdf"'},
    )


@router.get("/appointment/{appointment_id}")
async def appointment_receipt(
    appointment_id: int,
    current_user: User = Depends(receipt_roles),
    db: Session = Depends(get_db),
):
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found.")
    _ensure_owner(db, current_user, appointment.patient_id)
    return _pdf_response(appointment_receipt_data(db, appointment))


@router.get("/visit/{visit_id}")
async def visit_receipt(
    visit_id: int,
    current_user: User = Depends(receipt_roles),
    db: Session = Depends(get_db),
):
    visit = db.query(PatientVisit).filter(PatientVisit.id == visit_id).first()
    if not visit:
        raise HTTPException(status_code=404, detail="Visit not found")
    _ensure_owner(db, current_user, visit.patient_id)
    return _pdf_response(visit_receipt_data(db, visit))
