"""Service pricing, duration and teeth-notation helpers"""

import math
import re
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Service, ServiceDiscount
from ...shared.timeutils import BLOCK_MINUTES, clinic_today

PRIMARY_TOOTH = re.compile(r"^[A-T]$")


def round_up_to_block(minutes: Optional[int]) -> int:
    """Round a duration up to the next multiple of 30 (minimum one block)"""
    if not minutes or minutes <= 0:
        return BLOCK_MINUTES
    return int(math.ceil(minutes / BLOCK_MINUTES) * BLOCK_MINUTES)


def calculate_estimated_minutes(service: Service, teeth_count: Optional[int] = None) -> int:
    if not service.per_teeth_service or not service.per_tooth_minutes:
        return service.estimated_minutes
    if not teeth_count or teeth_count <= 0:
        return service.per_tooth_minutes
    return int(math.ceil(service.per_tooth_minutes * teeth_count / BLOCK_MINUTES) * BLOCK_MINUTES)


def active_discount(db: Session, service: Service, day: date) -> Optional[ServiceDiscount]:
    """Launched promo covering the date that has been live for at least a day"""
    activated_cutoff = clinic_today() - timedelta(days=1)
    candidates = (
        db.query(ServiceDiscount)
        .filter(
            ServiceDiscount.service_id == service.id,
            ServiceDiscount.status == "launched",
            ServiceDiscount.start_date <= day,
            ServiceDiscount.end_date >= day,
            ServiceDiscount.activated_at.isnot(None),
        )
        .order_by(ServiceDiscount.start_date.desc())
        .all()
    )
    for discount in candidates:
        if discount.activated_at.date() <= activated_cutoff:
            return discount
    return None


def get_price_for_date(db: Session, service: Service, day: date) -> float:
    discount = active_discount(db, service, day)
    return discount.discounted_price if discount else service.price


def calculate_total_price(service: Service, unit_price: float, teeth: Optional[str] = None) -> float:
    """Per-teeth services are charged per listed tooth"""
    if not service.per_teeth_service or not teeth:
        return unit_price
    return unit_price * count_teeth(teeth)


# ============================================================================
# TEETH NOTATION (adult 1-32, primary A-T, comma separated)
# ============================================================================


def split_teeth(teeth: Optional[str]) -> list[str]:
    if not teeth:
        return []
    return [t.strip() for t in teeth.split(",") if t.strip()]


def sanitize_teeth(teeth: Optional[str]) -> str:
    return ",".join(split_teeth(teeth))


def format_teeth(teeth: Optional[str]) -> str:
    return ", ".join(split_teeth(teeth))


def count_teeth(teeth: Optional[str]) -> int:
    return len(split_teeth(teeth))


def is_primary_teeth(teeth: Optional[str]) -> bool:
    return any(PRIMARY_TOOTH.match(t) for t in split_teeth(teeth))


def teeth_type_description(teeth: Optional[str]) -> str:
    if not split_teeth(teeth):
        return ""
    return "Primary Teeth" if is_primary_teeth(teeth) else "Adult Teeth"


def validate_teeth_format(teeth: Optional[str]) -> list[str]:
    errors = []
    has_numbers = has_letters = False
    for tooth in split_teeth(teeth):
        if tooth.isdigit() and 1 <= int(tooth) <= 32:
            has_numbers = True
        elif PRIMARY_TOOTH.match(tooth):
            has_letters = True
        else:
            errors.append(
                f"Invalid tooth identifier: {tooth}. Use numbers 1-32 for adult teeth or letters A-T for primary teeth."
            )
    if has_numbers and has_letters:
        errors.append("Cannot mix adult teeth (numbers 1-32) and primary teeth (letters A-T) in the same entry.")
    return errors
