"""
Refund deadline monitor
Flags open refund requests that are past their processing deadline
"""

import logging

from sqlalchemy.orm import Session

from ..domain.refunds.repository import RefundRepository
from ..email_service import queue_admin_email
from ..email_templates import refund_deadline_alert_template
from ..shared.timeutils import clinic_now

logger = logging.getLogger(__name__)


def check_refund_deadlines(db: Session) -> dict:
    """
    Log overdue refund requests and queue one admin alert listing those
    not yet notified.
    Should be run as a scheduled job (daily)

    Returns:
        dict with checked timestamp and overdue count
    """
    now = clinic_now()
    logger.info("🚀 Checking refund request deadlines")

    try:
        overdue = RefundRepository.overdue(db, now)
        summary = {"checked": now.isoformat(), "overdue": len(overdue), "notified": 0}

        to_notify = []
        for refund in overdue:
            logger.warning(
                f"⚠️ Refund request #{refund.id} overdue (status={refund.status}, deadline={refund.deadline_at})"
            )
            if refund.deadline_notified_at is None:
                to_notify.append(refund)

        if to_notify:
            rows = [
                {
                    "id": r.id,
                    "patient_name": f"{r.patient.first_name} {r.patient.last_name}" if r.patient else "-",
                    "refund_amount": r.refund_amount or 0,
                    "deadline_at": r.deadline_at.strftime("%Y-%m-%d"),
                }
                for r in to_notify
            ]
            queue_admin_email(db, "Overdue refund requests", refund_deadline_alert_template(rows))
            for refund in to_notify:
                refund.deadline_notified_at = now
            db.commit()
            summary["notified"] = len(to_notify)

        logger.info(f"📊 Refund deadlines: {summary['overdue']} overdue, {summary['notified']} newly notified")
        return summary

    except Exception as e:
        logger.error(f"❌ Refund deadline check failed: {e}")
        db.rollback()
        raise
