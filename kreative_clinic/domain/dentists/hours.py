"""Dentist working-day and custom-hours rules"""

from datetime import date
from typing import Optional

from ...models import DAY_KEYS, DentistSchedule
from ...shared.timeutils import normalize_time, to_minutes, weekday_index


def works_on_weekday(dentist: DentistSchedule, weekday: int) -> bool:
    return bool(getattr(dentist, DAY_KEYS[weekday]))


def active_on_date(dentist: DentistSchedule, day: date) -> bool:
    """Active status, contract not ended, and scheduled on that weekday"""
    if dentist.status != "active":
        return False
    if dentist.contract_end_date and dentist.contract_end_date < day:
        return False
    return works_on_weekday(dentist, weekday_index(day))


def get_hours_for_day(dentist: DentistSchedule, weekday: int) -> Optional[dict]:
    key = DAY_KEYS[weekday]
    start = getattr(dentist, f"{key}_start_time")
    end = getattr(dentist, f"{key}_end_time")
    if not start or not end:
        return None
    return {"start": normalize_time(start), "end": normalize_time(end)}


def is_time_slot_within_hours(dentist: DentistSchedule, weekday: int, start: str, end: str) -> bool:
    """Slot must be on a working day and, when custom hours exist, inside them"""
    if not works_on_weekday(dentist, weekday):
        return False
    hours = get_hours_for_day(dentist, weekday)
    if hours is None:
        return True
    return to_minutes(start) >= to_minutes(hours["start"]) and to_minutes(end) <= to_minutes(hours["end"])


def working_days(dentist: DentistSchedule) -> list[str]:
    return [key for key in DAY_KEYS if getattr(dentist, key)]


def hours_by_day(dentist: DentistSchedule) -> dict:
    return {key: get_hours_for_day(dentist, idx) for idx, key in enumerate(DAY_KEYS)}
