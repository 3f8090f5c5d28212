"""
Inventory near-expiry scan
Batches with stock left that expire within the configured window
"""

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from ..domain.inventory.repository import InventoryRepository
from ..email_service import queue_admin_email
from ..email_templates import inventory_near_expiry_template
from ..shared.timeutils import clinic_today

logger = logging.getLogger(__name__)


def scan_near_expiry(db: Session) -> dict:
    """
    Log batches expiring within near_expiry_days and queue one admin email.
    Should be run as a scheduled job (daily)

    Returns:
        dict: {"checked": date, "near_expiry_days": n, "batches": count}
    """
    today = clinic_today()
    logger.info("🚀 Scanning inventory for near-expiry batches")

    try:
        settings = InventoryRepository.get_settings(db)
        until = today + timedelta(days=settings.near_expiry_days)
        batches = InventoryRepository.near_expiry(db, today, until)
        summary = {"checked": today.isoformat(), "near_expiry_days": settings.near_expiry_days, "batches": len(batches)}

        if batches:
            rows = []
            for batch in batches:
                logger.warning(
                    f"⚠️ Batch #{batch.id} of {batch.item.name} expires {batch.expiry_date} "
                    f"({batch.qty_on_hand:g} on hand)"
                )
                rows.append(
                    {
                        "item_name": batch.item.name,
                        "lot_number": batch.lot_number,
                        "qty_on_hand": float(batch.qty_on_hand),
                        "expiry_date": batch.expiry_date.isoformat(),
                    }
                )
            queue_admin_email(
                db,
                "Inventory batches near expiry",
                inventory_near_expiry_template(rows, settings.near_expiry_days),
            )

        logger.info(f"📊 Near-expiry scan: {summary}")
        return summary

    except Exception as e:
        logger.error(f"❌ Near-expiry scan failed: {e}")
        db.rollback()
        raise
