"""
Appointment capacity rules
Global per-block capacity, per-dentist availability and the bookable slot list
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import DentistSchedule, Patient
from ...shared.timeutils import (
    BLOCK_MINUTES,
    blocks_needed,
    build_blocks,
    clinic_now,
    clinic_today,
    minutes_to_hhmm,
    to_minutes,
    weekday_index,
)
from ..clinic_calendar.resolver import ClinicDateResolver
from ..dentists.hours import get_hours_for_day, is_time_slot_within_hours
from ..patients.preferred_dentist import dentist_summary, resolve_preferred_dentist
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)

CLOSED_MESSAGE = "Clinic is closed on this date."
INVALID_START_MESSAGE = "Invalid start time (not on grid or outside hours)."
PREFERRED_BUSY_MESSAGE = "Your preferred dentist is already booked for this time. Please choose another slot."
NO_DENTIST_MESSAGE = "No dentist is available for this time slot."


def _block_keys(start: str, count: int) -> list[str]:
    start_min = to_minutes(start)
    return [minutes_to_hhmm(start_min + i * BLOCK_MINUTES) for i in range(count)]


def _dentist_free(dentist_usage: dict, dentist_id: int, keys: list[str]) -> bool:
    per_block = dentist_usage.get(dentist_id, {})
    return all(per_block.get(key, 0) < 1 for key in keys)


def check_capacity(
    db: Session,
    day: date,
    start: str,
    minutes: int,
    exclude_id: Optional[int] = None,
    preferred_dentist_id: Optional[int] = None,
    requested_honor_preferred: bool = True,
    force_dentist_id: Optional[int] = None,
) -> dict:
    """
    Check whether a booking of `minutes` starting at `start` fits on `day`.

    Returns a dict with ok, message (when not ok), assigned_dentist_id,
    effective_honor_preferred, the end time and the snapshot used.
    """
    resolver = ClinicDateResolver(db)
    snap = resolver.resolve(day)
    if not snap["is_open"]:
        return {"ok": False, "reason": "closed", "message": CLOSED_MESSAGE, "snap": snap}

    blocks = build_blocks(snap["open_time"], snap["close_time"])
    if start not in blocks:
        return {"ok": False, "reason": "invalid_start_time", "message": INVALID_START_MESSAGE, "snap": snap}

    required = blocks_needed(minutes)
    keys = _block_keys(start, required)
    end = minutes_to_hhmm(to_minutes(start) + required * BLOCK_MINUTES)
    capacity = snap["effective_capacity"]

    global_usage = AppointmentRepository.slot_usage(db, day, blocks, exclude_id)
    for key in keys:
        if key not in global_usage or global_usage[key] >= capacity:
            return {
                "ok": False,
                "reason": "full",
                "full_at": key,
                "message": f"Time slot starting at {key} is already full.",
                "snap": snap,
            }

    active_ids = snap["active_dentist_ids"]
    preferred_active = bool(preferred_dentist_id and preferred_dentist_id in active_ids)
    effective_honor = bool(requested_honor_preferred and preferred_active)

    if force_dentist_id:
        candidates = [force_dentist_id]
        effective_honor = False
    elif effective_honor:
        candidates = [preferred_dentist_id]
    else:
        candidates = list(active_ids)

    dentist_usage = AppointmentRepository.dentist_slot_usage(db, day, exclude_id)
    weekday = weekday_index(day)
    dentists = {d.id: d for d in db.query(DentistSchedule).filter(DentistSchedule.id.in_(candidates)).all()}

    assigned = None
    for candidate_id in candidates:
        dentist = dentists.get(candidate_id)
        if not dentist or candidate_id not in active_ids:
            continue
        if not is_time_slot_within_hours(dentist, weekday, start, end):
            continue
        if _dentist_free(dentist_usage, candidate_id, keys):
            assigned = candidate_id
            break

    if assigned is None:
        message = PREFERRED_BUSY_MESSAGE if effective_honor else NO_DENTIST_MESSAGE
        return {"ok": False, "reason": "dentist_unavailable", "message": message, "snap": snap}

    return {
        "ok": True,
        "assigned_dentist_id": assigned,
        "effective_honor_preferred": effective_honor,
        "requested_honor_preferred": requested_honor_preferred,
        "blocks_needed": required,
        "start_time": start,
        "end_time": end,
        "snap": snap,
    }


def next_bookable_minute(now=None) -> Optional[int]:
    """
    Earliest start (minutes after midnight) allowed for a same-day booking:
    the 30-minute boundary after now + 30 minutes. None once that passes midnight.
    """
    now = now or clinic_now()
    current = now.hour * 60 + now.minute
    next_block = ((current + BLOCK_MINUTES) // BLOCK_MINUTES) * BLOCK_MINUTES
    if next_block >= 24 * 60:
        return None
    return next_block


def available_slots(
    db: Session,
    day: date,
    minutes: Optional[int],
    patient: Optional[Patient],
    requested_honor_preferred: bool = True,
) -> dict:
    """Valid start times for a date plus the capacity snapshot behind them"""
    resolver = ClinicDateResolver(db)
    snap = resolver.resolve(day)
    if not snap["is_open"]:
        return {"slots": []}

    patient_blocked_slots = []
    preferred = None
    if patient:
        patient_blocked_slots = AppointmentRepository.blocked_slots_for_patient(db, patient.id, day)
        preferred = resolve_preferred_dentist(db, patient.id)
    preferred_id = preferred.id if preferred else None

    preferred_active = bool(preferred_id and preferred_id in snap["active_dentist_ids"])
    effective_honor = bool(requested_honor_preferred and preferred_active)

    open_time, close_time = snap["open_time"], snap["close_time"]
    if effective_honor:
        hours = get_hours_for_day(preferred, weekday_index(day))
        if hours:
            open_time, close_time = hours["start"], hours["end"]

    blocks = build_blocks(open_time, close_time)
    usage = AppointmentRepository.slot_usage(db, day, blocks)
    dentist_usage = AppointmentRepository.dentist_slot_usage(db, day)
    capacity = snap["effective_capacity"]
    required = blocks_needed(minutes) if minutes else 1

    valid = []
    for start in blocks:
        keys = _block_keys(start, required)
        if any(key not in usage or usage[key] >= capacity for key in keys):
            continue
        if effective_honor and not _dentist_free(dentist_usage, preferred_id, keys):
            continue
        if patient and patient_blocked_slots:
            proposed = f"{start}-{minutes_to_hhmm(to_minutes(start) + required * BLOCK_MINUTES)}"
            if AppointmentRepository.has_overlap(db, patient.id, day, proposed):
                continue
        valid.append(start)

    if day == clinic_today():
        earliest = next_bookable_minute()
        if earliest is None:
            valid = []
        else:
            valid = [slot for slot in valid if to_minutes(slot) >= earliest]

    return {
        "slots": valid,
        "snapshot": {
            "effective_capacity": snap["effective_capacity"],
            "calendar_max_per_block": snap["calendar_max_per_block"],
            "capacity_override": snap["capacity_override"],
            "dentist_count": snap["dentist_count"],
            "dentists": snap["dentists"],
            "active_dentist_ids": snap["active_dentist_ids"],
        },
        "usage": {"global": usage, "per_dentist": dentist_usage},
        "metadata": {
            "preferred_dentist_id": preferred_id,
            "preferred_dentist_active": preferred_active,
            "requested_honor_preferred_dentist": requested_honor_preferred,
            "effective_honor_preferred_dentist": effective_honor,
            "preferred_dentist": dentist_summary(preferred),
            "patient_blocked_slots": patient_blocked_slots,
        },
    }
