"""Reports router - visit reports, analytics summary and time-block utilization"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import User
from .service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Reports"])


def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    """Dependency injection for ReportService"""
    return ReportService(db)


@router.get("/reports/visits-monthly")
async def visits_monthly(
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month"),
    current_user: User = Depends(require_admin),
    service: ReportService = Depends(get_report_service),
):
    return service.visits_monthly(month)


@router.get("/reports/visits-daily")
async def visits_daily(
    date: Optional[date] = Query(None),
    current_user: User = Depends(require_admin),
    service: ReportService = Depends(get_report_service),
):
    return service.visits_daily(date)


@router.get("/analytics/summary")
async def analytics_summary(
    period: Optional[str] = Query(None, description="YYYY-MM"),
    month: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    service: ReportService = Depends(get_report_service),
):
    return service.analytics_summary(period or month)


@router.get("/analytics/comparison")
async def analytics_comparison(
    period: Optional[str] = Query(None, description="YYYY-MM"),
    month: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    service: ReportService = Depends(get_report_service),
):
    """This month against last month for the headline metrics"""
    return service.analytics_comparison(month or period)


@router.get("/analytics/trend")
async def analytics_trend(
    months: int = Query(6, description="Clamped to 3..24"),
    yearly: bool = Query(False),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: User = Depends(require_admin),
    service: ReportService = Depends(get_report_service),
):
    return service.analytics_trend(months, yearly, start_date, end_date)


@router.get("/admin/time-block-utilization")
async def time_block_utilization(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: User = Depends(require_admin),
    service: ReportService = Depends(get_report_service),
):
    """Booked vs capacity per 30-minute block, at most 31 days"""
    return service.time_block_utilization(start_date, end_date)
