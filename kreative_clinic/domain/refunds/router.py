"""Refund requests router - FastAPI endpoints for admin and staff refund handling"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_staff
from ...database import get_db
from ...models import User
from .schemas import ExtendDeadlineRequest, RefundAction
from .service import RefundService, serialize_refund

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/refund-requests", tags=["Refunds"])


def get_refund_service(db: Session = Depends(get_db)) -> RefundService:
    """Dependency injection for RefundService"""
    return RefundService(db)


@router.get("")
async def list_refund_requests(
    status: Optional[Literal["pending", "approved", "processed", "completed", "rejected"]] = Query(None),
    current_user: User = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.list_requests(status)


@router.get("/{refund_id}")
async def get_refund_request(
    refund_id: int,
    current_user: User = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return serialize_refund(service.get_request(refund_id))


@router.post("/{refund_id}/approve")
async def approve_refund(
    refund_id: int,
    data: RefundAction,
    current_user: User = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.transition(refund_id, "approve", data.admin_notes, current_user)


@router.post("/{refund_id}/reject")
async def reject_refund(
    refund_id: int,
    data: RefundAction,
    current_user: User = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.transition(refund_id, "reject", data.admin_notes, current_user)


@router.post("/{refund_id}/process")
async def process_refund(
    refund_id: int,
    data: RefundAction,
    current_user: User = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.transition(refund_id, "process", data.admin_notes, current_user)


@router.post("/{refund_id}/complete")
async def complete_refund(
    refund_id: int,
    data: RefundAction,
    current_user: User = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.transition(refund_id, "complete", data.admin_notes, current_user)


@router.post("/{refund_id}/extend-deadline")
async def extend_refund_deadline(
    refund_id: int,
    data: ExtendDeadlineRequest,
    current_user: User = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    """Push the processing deadline to a later date"""
    return service.extend_deadline(refund_id, data.new_deadline, data.reason, current_user)
