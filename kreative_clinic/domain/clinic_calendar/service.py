"""Clinic calendar service - weekly defaults, date overrides and resolution"""

import logging
from datetime import date

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import DAY_NAMES, ClinicCalendar
from ...shared.errors import FieldValidationError
from ...shared.timeutils import build_blocks, to_minutes, weekday_index
from .repository import ClinicCalendarRepository
from .resolver import ClinicDateResolver
from .schemas import CalendarEntryCreate, CalendarEntryUpdate, WeeklyScheduleUpdate

logger = logging.getLogger(__name__)


def validate_open_hours(is_open: bool, open_time, close_time) -> None:
    """Open days need both times and close after open"""
    if not is_open:
        return
    errors = {}
    if not open_time:
        errors["open_time"] = ["Open time is required when the clinic is open."]
    if not close_time:
        errors["close_time"] = ["Close time is required when the clinic is open."]
    if not errors and to_minutes(close_time) <= to_minutes(open_time):
        errors["close_time"] = ["Close time must be after open time."]
    if errors:
        raise FieldValidationError(errors)


def serialize_row(row) -> dict:
    data = {
        "id": row.id,
        "is_open": bool(row.is_open),
        "open_time": row.open_time,
        "close_time": row.close_time,
        "note": row.note,
    }
    if isinstance(row, ClinicCalendar):
        data["date"] = row.date.isoformat()
        data["max_per_block"] = row.max_per_block
    else:
        data["weekday"] = row.weekday
    return data


class ClinicCalendarService:
    """Service layer for clinic schedule business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClinicCalendarRepository()

    # Weekly defaults

    def get_weekly_schedule(self):
        return self.repo.ensure_weekly_rows(self.db)

    def update_weekly(self, schedule_id: int, data: WeeklyScheduleUpdate):
        row = self.repo.get_weekly_by_id(self.db, schedule_id)
        if not row:
            raise HTTPException(status_code=404, detail="Weekly schedule not found")

        updates = data.model_dump(exclude_unset=True)
        is_open = updates.get("is_open", row.is_open)
        open_time = updates.get("open_time", row.open_time)
        close_time = updates.get("close_time", row.close_time)

        if is_open:
            validate_open_hours(True, open_time, close_time)
        else:
            open_time = close_time = None

        row = self.repo.save(
            self.db,
            row,
            is_open=is_open,
            open_time=open_time,
            close_time=close_time,
            note=updates.get("note", row.note),
        )
        logger.info(f"✅ Weekly schedule updated: {DAY_NAMES[row.weekday]} open={row.is_open}")
        return row

    # Date overrides

    def list_overrides(self):
        return self.repo.list_overrides(self.db)

    def create_override(self, data: CalendarEntryCreate) -> ClinicCalendar:
        if self.repo.get_override(self.db, data.date):
            raise FieldValidationError.single("date", "The date has already been taken.")

        validate_open_hours(data.is_open, data.open_time, data.close_time)
        entry = ClinicCalendar(date=data.date)
        entry = self.repo.save(
            self.db,
            entry,
            is_open=data.is_open,
            open_time=data.open_time if data.is_open else None,
            close_time=data.close_time if data.is_open else None,
            note=data.note,
            max_per_block=data.max_per_block,
        )
        logger.info(f"✅ Calendar override created for {entry.date} (open={entry.is_open})")
        return entry

    def update_override(self, entry_id: int, data: CalendarEntryUpdate) -> ClinicCalendar:
        entry = self.repo.get_override_by_id(self.db, entry_id)
        if not entry:
            raise HTTPException(status_code=404, detail="Calendar entry not found")

        updates = data.model_dump(exclude_unset=True)
        new_date = updates.get("date") or entry.date
        if new_date != entry.date:
            clash = self.repo.get_override(self.db, new_date)
            if clash and clash.id != entry.id:
                raise FieldValidationError.single("date", "The date has already been taken.")

        is_open = updates.get("is_open", entry.is_open)
        open_time = updates.get("open_time", entry.open_time)
        close_time = updates.get("close_time", entry.close_time)
        validate_open_hours(is_open, open_time, close_time)
        if not is_open:
            open_time = close_time = None

        return self.repo.save(
            self.db,
            entry,
            date=new_date,
            is_open=is_open,
            open_time=open_time,
            close_time=close_time,
            note=updates.get("note", entry.note),
            max_per_block=updates.get("max_per_block", entry.max_per_block),
        )

    def delete_override(self, entry_id: int) -> None:
        entry = self.repo.get_override_by_id(self.db, entry_id)
        if not entry:
            raise HTTPException(status_code=404, detail="Calendar entry not found")
        day = entry.date
        self.repo.delete(self.db, entry)
        logger.info(f"🗑️ Calendar override removed for {day}")

    # Resolution

    def resolve(self, day: date) -> dict:
        """{source: override|weekly, data: row}"""
        source, row = ClinicDateResolver(self.db).source_row(day)
        if row is None:
            return {
                "source": "weekly",
                "data": {"weekday": weekday_index(day), "is_open": False, "open_time": None, "close_time": None, "note": None},
            }
        return {"source": source, "data": serialize_row(row)}

    def schedule_for_date(self, day: date) -> dict:
        snapshot = ClinicDateResolver(self.db).resolve(day)
        snapshot["blocks"] = build_blocks(snapshot["open_time"], snapshot["close_time"]) if snapshot["is_open"] else []
        return snapshot
