"""Dentist schedule service - Business logic for dentist rosters and hours"""

import logging
from datetime import date

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import DAY_KEYS, DentistSchedule, User
from ...shared.errors import FieldValidationError
from ...shared.timeutils import clinic_today, to_minutes
from ..clinic_calendar.repository import ClinicCalendarRepository
from .hours import active_on_date
from .repository import DentistRepository
from .schemas import DentistScheduleCreate, DentistScheduleUpdate

logger = logging.getLogger(__name__)

HOURS_FAILED_MESSAGE = "Validation failed for dentist schedule hours."


class DentistService:
    """Service layer for dentist schedule business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DentistRepository()

    def list_dentists(self, status: str = None) -> list[DentistSchedule]:
        return self.repo.list_dentists(self.db, status)

    def get_dentist(self, dentist_id: int) -> DentistSchedule:
        dentist = self.repo.get(self.db, dentist_id)
        if not dentist:
            raise HTTPException(status_code=404, detail="Dentist schedule not found")
        return dentist

    def create_dentist(self, data: DentistScheduleCreate) -> DentistSchedule:
        fields = self._validated_fields(data)
        dentist = self.repo.save(self.db, DentistSchedule(), **fields)
        logger.info(f"✅ Dentist schedule created: {dentist.dentist_code}")
        return dentist

    def update_dentist(self, dentist_id: int, data: DentistScheduleUpdate) -> DentistSchedule:
        dentist = self.get_dentist(dentist_id)
        fields = self._validated_fields(data, current_id=dentist.id)
        dentist = self.repo.save(self.db, dentist, **fields)
        logger.info(f"✅ Dentist schedule updated: {dentist.dentist_code}")
        return dentist

    def delete_dentist(self, dentist_id: int) -> None:
        dentist = self.get_dentist(dentist_id)
        code = dentist.dentist_code
        self.repo.delete(self.db, dentist)
        logger.info(f"🗑️ Dentist schedule deleted: {code}")

    def my_schedule(self, user: User) -> DentistSchedule:
        dentist = self.repo.get_by_email(self.db, user.email)
        if not dentist:
            raise HTTPException(status_code=404, detail="Dentist schedule not found")
        return dentist

    def available_for_date(self, day: date) -> dict:
        dentists = [d for d in self.repo.list_dentists(self.db) if active_on_date(d, day)]
        return {
            "date": day.isoformat(),
            "dentists": [
                {"id": d.id, "dentist_code": d.dentist_code, "dentist_name": d.dentist_name}
                for d in dentists
            ],
            "count": len(dentists),
        }

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validated_fields(self, data, current_id: int = None) -> dict:
        fields = data.model_dump()
        errors = {}

        existing = self.repo.get_by_code(self.db, fields["dentist_code"])
        if existing and existing.id != current_id:
            errors["dentist_code"] = ["The dentist code has already been taken."]
        existing = self.repo.get_by_email(self.db, fields["email"])
        if existing and existing.id != current_id:
            errors["email"] = ["The email has already been taken."]
        if fields.get("contract_end_date") and fields["contract_end_date"] < clinic_today():
            errors["contract_end_date"] = ["The contract end date must be a date after or equal to today."]
        if errors:
            raise FieldValidationError(errors)

        if fields.get("is_pseudonymous") is None:
            fields["is_pseudonymous"] = True

        if not any(fields[day] for day in DAY_KEYS):
            raise FieldValidationError.single("weekdays", "Select at least one working day.")

        self._validate_hours_against_clinic(fields)
        return fields

    def _validate_hours_against_clinic(self, fields: dict) -> None:
        """
        Per working day: both-or-neither times, end after start, and
        inside the clinic's weekly hours. Unselected days lose their times.
        """
        weekly = {row.weekday: row for row in ClinicCalendarRepository.ensure_weekly_rows(self.db)}
        errors = {}

        for weekday, day in enumerate(DAY_KEYS):
            start = fields.get(f"{day}_start_time")
            end = fields.get(f"{day}_end_time")

            if not fields[day]:
                fields[f"{day}_start_time"] = None
                fields[f"{day}_end_time"] = None
                continue

            if bool(start) != bool(end):
                errors[f"{day}_times"] = [
                    f"Both start and end times must be provided for {day}, or leave both empty."
                ]
                continue

            if not start:
                # No custom hours: dentist follows clinic hours
                continue

            if to_minutes(end) <= to_minutes(start):
                errors[f"{day}_times"] = [f"End time must be after start time for {day}."]
                continue

            clinic = weekly.get(weekday)
            if clinic and clinic.is_open:
                if clinic.open_time and clinic.close_time:
                    window = f"{clinic.open_time} - {clinic.close_time}"
                    if to_minutes(start) < to_minutes(clinic.open_time):
                        errors[f"{day}_start_time"] = [
                            f"Dentist start time for {day} must be within clinic hours ({window})."
                        ]
                    if to_minutes(end) > to_minutes(clinic.close_time):
                        errors[f"{day}_end_time"] = [
                            f"Dentist end time for {day} must be within clinic hours ({window})."
                        ]
            elif clinic and not clinic.is_open:
                errors[day] = [f"Clinic is closed on {day}. Dentist cannot be scheduled on closed days."]

        if errors:
            logger.warning(f"⚠️ Dentist hours rejected: {list(errors)}")
            raise FieldValidationError(errors, HOURS_FAILED_MESSAGE)
