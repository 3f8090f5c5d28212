"""Clinic calendar repository - weekly defaults and per-date overrides"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ClinicCalendar, ClinicWeeklySchedule, DentistSchedule

DEFAULT_WEEK = {
    # weekday: (is_open, open, close)
    0: (False, None, None),
    1: (True, "08:00", "17:00"),
    2: (True, "08:00", "17:00"),
    3: (True, "08:00", "17:00"),
    4: (True, "08:00", "17:00"),
    5: (True, "08:00", "17:00"),
    6: (True, "08:00", "12:00"),
}


class ClinicCalendarRepository:
    """Repository for clinic schedule database operations"""

    @staticmethod
    def ensure_weekly_rows(db: Session) -> list[ClinicWeeklySchedule]:
        """Return the 7 weekly rows, creating defaults for missing weekdays"""
        rows = {row.weekday: row for row in db.query(ClinicWeeklySchedule).all()}
        created = False
        for weekday, (is_open, open_time, close_time) in DEFAULT_WEEK.items():
            if weekday not in rows:
                row = ClinicWeeklySchedule(
                    weekday=weekday, is_open=is_open, open_time=open_time, close_time=close_time
                )
                db.add(row)
                rows[weekday] = row
                created = True
        if created:
            db.commit()
        return [rows[w] for w in sorted(rows)]

    @staticmethod
    def get_weekly(db: Session, weekday: int) -> Optional[ClinicWeeklySchedule]:
        return db.query(ClinicWeeklySchedule).filter(ClinicWeeklySchedule.weekday == weekday).first()

    @staticmethod
    def get_weekly_by_id(db: Session, schedule_id: int) -> Optional[ClinicWeeklySchedule]:
        return db.query(ClinicWeeklySchedule).filter(ClinicWeeklySchedule.id == schedule_id).first()

    @staticmethod
    def get_override(db: Session, day: date) -> Optional[ClinicCalendar]:
        return db.query(ClinicCalendar).filter(ClinicCalendar.date == day).first()

    @staticmethod
    def get_override_by_id(db: Session, entry_id: int) -> Optional[ClinicCalendar]:
        return db.query(ClinicCalendar).filter(ClinicCalendar.id == entry_id).first()

    @staticmethod
    def get_overrides_between(db: Session, start: date, end: date) -> list[ClinicCalendar]:
        return (
            db.query(ClinicCalendar)
            .filter(ClinicCalendar.date >= start, ClinicCalendar.date <= end)
            .order_by(ClinicCalendar.date.asc())
            .all()
        )

    @staticmethod
    def list_overrides(db: Session) -> list[ClinicCalendar]:
        return db.query(ClinicCalendar).order_by(ClinicCalendar.date.asc()).all()

    @staticmethod
    def save(db: Session, entry, **updates):
        for key, value in updates.items():
            setattr(entry, key, value)
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def delete(db: Session, entry) -> None:
        db.delete(entry)
        db.commit()

    @staticmethod
    def get_dentists(db: Session) -> list[DentistSchedule]:
        return db.query(DentistSchedule).order_by(DentistSchedule.dentist_code.asc()).all()
