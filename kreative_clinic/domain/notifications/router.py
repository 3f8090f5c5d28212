"""Notifications router - admin endpoints for SMS, delivery logs and the email queue, plus the user inbox"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from .schemas import TestSmsRequest, WhitelistCreate, WhitelistResponse
from .inbox import InboxService
from .service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Notifications"])
inbox_router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    """Dependency injection for NotificationService"""
    return NotificationService(db)


def get_inbox_service(db: Session = Depends(get_db)) -> InboxService:
    """Dependency injection for InboxService"""
    return InboxService(db)


@router.get("/sms-whitelist", response_model=list[WhitelistResponse])
async def list_sms_whitelist(
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return service.whitelist()


@router.post("/sms-whitelist", response_model=WhitelistResponse, status_code=201)
async def add_sms_whitelist(
    data: WhitelistCreate,
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return service.add_to_whitelist(data.phone, data.label)


@router.delete("/sms-whitelist/{entry_id}")
async def delete_sms_whitelist(
    entry_id: int,
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return service.remove_from_whitelist(entry_id)


@router.post("/test-sms")
async def test_sms(
    data: TestSmsRequest,
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    """Send one SMS through the same gates as production traffic"""
    return service.test_sms(data.to, data.message, current_user)


@router.get("/notification-logs")
async def notification_logs(
    status: Optional[str] = Query(None),
    to: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return service.logs(status, to, page, per_page)


# ============================================================================
# EMAIL QUEUE
# ============================================================================


@router.get("/queued-emails")
async def queued_emails(
    status: Optional[str] = Query(None),
    to: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return service.queued_emails(status, to, page, per_page)


@router.get("/queued-emails/stats")
async def queued_email_stats(
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return service.email_stats()


@router.post("/queued-emails/retry-all")
async def retry_all_emails(
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    """Re-queue every failed email and try each once"""
    return service.retry_all_emails(current_user)


# ============================================================================
# INBOX
# ============================================================================


@inbox_router.get("/mine")
async def my_notifications(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: InboxService = Depends(get_inbox_service),
):
    return service.mine(current_user, limit)


@inbox_router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    service: InboxService = Depends(get_inbox_service),
):
    return service.unread_count(current_user)


@inbox_router.post("/mark-all-read")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    service: InboxService = Depends(get_inbox_service),
):
    return service.mark_all_read(current_user)
