"""Clinic clock and time block helpers"""

import math
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from ..config import CLINIC_TIMEZONE

BLOCK_MINUTES = 30

_clinic_tz = ZoneInfo(CLINIC_TIMEZONE)


def clinic_now() -> datetime:
    """Current wall-clock time at the clinic as a naive datetime"""
    return datetime.now(_clinic_tz).replace(tzinfo=None)


def clinic_today() -> date:
    return clinic_now().date()


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value[:10], "%Y-%m-%d").date()


def normalize_time(value: Union[str, time, None]) -> Optional[str]:
    """Trim "HH:MM:SS" / time objects down to "HH:MM" """
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M")
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time: {value}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time: {value}")
    return f"{hour:02d}:{minute:02d}"


def to_minutes(value: str) -> int:
    hhmm = normalize_time(value)
    hour, minute = hhmm.split(":")
    return int(hour) * 60 + int(minute)


def minutes_to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def build_blocks(open_time: Optional[str], close_time: Optional[str]) -> list[str]:
    """30-minute block start times between open and close"""
    if not open_time or not close_time:
        return []
    start = to_minutes(open_time)
    end = to_minutes(close_time)
    blocks = []
    cursor = start
    while cursor + BLOCK_MINUTES <= end:
        blocks.append(minutes_to_hhmm(cursor))
        cursor += BLOCK_MINUTES
    return blocks


def blocks_needed(minutes: int) -> int:
    return max(1, math.ceil(minutes / BLOCK_MINUTES))


def parse_time_slot(time_slot: str) -> tuple[str, str]:
    """Split "HH:MM-HH:MM" into normalized start/end"""
    start, end = time_slot.split("-", 1)
    return normalize_time(start), normalize_time(end)


def make_time_slot(start: str, minutes: int) -> str:
    start_min = to_minutes(start)
    return f"{minutes_to_hhmm(start_min)}-{minutes_to_hhmm(start_min + minutes)}"


def slot_blocks(time_slot: str) -> list[str]:
    """Block start times covered by a "HH:MM-HH:MM" slot"""
    start, end = parse_time_slot(time_slot)
    return build_blocks(start, end) or [start]


def weekday_index(day: date) -> int:
    """0 = Sunday .. 6 = Saturday"""
    return (day.weekday() + 1) % 7


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def date_range(start: date, end: date):
    cursor = start
    while cursor <= end:
        yield cursor
        cursor += timedelta(days=1)
