"""Appointment domain schemas - Pydantic models for validation"""

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from ...shared.timeutils import normalize_time
from ...shared.validators import validate_ph_mobile

PaymentMethod = Literal["cash", "maya", "hmo"]
CancellationReason = Literal[
    "patient_request",
    "admin_cancellation",
    "health_safety_concern",
    "clinic_cancellation",
    "medical_contraindication",
    "other",
]


class _StartTimeMixin(BaseModel):
    @field_validator("start_time", check_fields=False)
    @classmethod
    def validate_start_time(cls, v):
        try:
            return normalize_time(v)
        except ValueError as e:
            raise ValueError("The start time field format is invalid.") from e


class AppointmentCreate(_StartTimeMixin):
    """Patient booking request"""

    service_id: int
    date: datetime.date
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    payment_method: PaymentMethod
    patient_hmo_id: Optional[int] = None
    teeth_count: Optional[int] = Field(None, ge=1, le=32)
    honor_preferred_dentist: bool = True


class StaffAppointmentCreate(AppointmentCreate):
    """Staff booking for an existing patient or a new record"""

    patient_id: Optional[int] = None
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    contact_number: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    birthdate: Optional[datetime.date] = None

    @field_validator("contact_number")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_ph_mobile(v)
        return v


class RejectRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=1000)
    cancellation_reason: Optional[CancellationReason] = None


class CancelRequest(BaseModel):
    cancellation_reason: Optional[CancellationReason] = None
    notes: Optional[str] = Field(None, max_length=1000)


class RescheduleRequest(_StartTimeMixin):
    date: datetime.date
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    honor_preferred_dentist: Optional[bool] = None


class ReminderRequest(BaseModel):
    message: Optional[str] = Field(None, max_length=640)
    edited: bool = False
