"""
Expired promo cleanup
Planned or launched promos whose end date has passed are canceled
"""

import logging

from sqlalchemy.orm import Session

from ..models import ServiceDiscount
from ..shared.timeutils import clinic_now, clinic_today

logger = logging.getLogger(__name__)


def cancel_expired_promos(db: Session) -> dict:
    """
    Should be run as a scheduled job (daily)

    Returns:
        dict: {"checked": date, "canceled": count}
    """
    today = clinic_today()
    summary = {"checked": today.isoformat(), "canceled": 0}

    try:
        expired = (
            db.query(ServiceDiscount)
            .filter(
                ServiceDiscount.status.in_(["planned", "launched"]),
                ServiceDiscount.end_date < today,
            )
            .all()
        )

        now = clinic_now()
        for promo in expired:
            promo.status = "canceled"
            promo.canceled_at = now
            summary["canceled"] += 1
            logger.info(f"✅ Promo {promo.id} expired on {promo.end_date}: {promo.status}")

        db.commit()
        logger.info(f"📊 Promo expiry summary: {summary}")
        return summary

    except Exception as e:
        logger.error(f"❌ Error canceling expired promos: {e}")
        db.rollback()
        raise
