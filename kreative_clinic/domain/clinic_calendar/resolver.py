"""
Clinic date resolver
Turns a calendar date into the schedule snapshot used for booking and capacity
"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from ...shared.timeutils import build_blocks, normalize_time, weekday_index
from ..dentists.hours import active_on_date
from .repository import ClinicCalendarRepository

logger = logging.getLogger(__name__)


class ClinicDateResolver:
    """Resolve a date against overrides, then the weekly defaults"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClinicCalendarRepository()
        self._dentists = None

    def _all_dentists(self):
        if self._dentists is None:
            self._dentists = self.repo.get_dentists(self.db)
        return self._dentists

    def source_row(self, day: date):
        """Return ("override" | "weekly", row or None)"""
        override = self.repo.get_override(self.db, day)
        if override:
            return "override", override
        self.repo.ensure_weekly_rows(self.db)
        return "weekly", self.repo.get_weekly(self.db, weekday_index(day))

    def resolve(self, day: date) -> dict:
        source, row = self.source_row(day)

        is_open = bool(row and row.is_open)
        open_time = normalize_time(row.open_time) if is_open else None
        close_time = normalize_time(row.close_time) if is_open else None
        if is_open and (not open_time or not close_time):
            logger.warning(f"⚠️ {source} schedule for {day} is open without hours, treating as closed")
            is_open = False

        dentists = [d for d in self._all_dentists() if active_on_date(d, day)] if is_open else []
        dentist_count = len(dentists)

        calendar_max = row.max_per_block if source == "override" else None
        capacity_override = calendar_max
        if not is_open:
            effective_capacity = 0
        elif capacity_override is not None:
            effective_capacity = min(dentist_count, capacity_override)
        else:
            effective_capacity = dentist_count

        return {
            "date": day.isoformat(),
            "source": source,
            "is_open": is_open,
            "open_time": open_time,
            "close_time": close_time,
            "note": row.note if row else None,
            "dentist_count": dentist_count,
            "dentists": [d.dentist_code for d in dentists],
            "active_dentist_ids": [d.id for d in dentists],
            "calendar_max_per_block": calendar_max,
            "capacity_override": capacity_override,
            "effective_capacity": effective_capacity,
        }

    def blocks(self, day: date) -> list[str]:
        snap = self.resolve(day)
        return build_blocks(snap["open_time"], snap["close_time"]) if snap["is_open"] else []
