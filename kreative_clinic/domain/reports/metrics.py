"""Small arithmetic helpers shared by the report endpoints"""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional

from ...shared.timeutils import clinic_today, end_of_day, start_of_day


def safe_pct(curr: float, prev: float) -> float:
    """Percentage change; a zero baseline reads as 100 when anything happened"""
    if prev == 0:
        return 100.0 if curr > 0 else 0.0
    return round((curr - prev) / prev * 100.0, 2)


def share_pct(part: int, total: int) -> float:
    return round(part / max(1, total) * 100.0, 2)


def kpi(curr: float, prev: float, digits: Optional[int] = None) -> dict:
    value = round(curr, digits) if digits is not None else curr
    previous = round(prev, digits) if digits is not None else prev
    return {"value": value, "prev": previous, "pct_change": safe_pct(float(curr), float(prev))}


def parse_month(value: Optional[str]) -> date:
    """First day of a YYYY-MM month; the current month when missing or malformed"""
    if value:
        try:
            return datetime.strptime(f"{value}-01", "%Y-%m-%d").date()
        except ValueError:
            pass
    return clinic_today().replace(day=1)


def month_bounds(first_day: date) -> tuple[datetime, datetime]:
    last_day = first_day.replace(day=calendar.monthrange(first_day.year, first_day.month)[1])
    return start_of_day(first_day), end_of_day(last_day)


def previous_month(first_day: date) -> date:
    return (first_day - timedelta(days=1)).replace(day=1)


def days_in_month(first_day: date) -> int:
    return calendar.monthrange(first_day.year, first_day.month)[1]
