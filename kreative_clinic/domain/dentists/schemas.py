"""Dentist schedule schemas - Pydantic models for validation"""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ...shared.timeutils import normalize_time

TIME_FIELDS = [f"{d}_{edge}_time" for d in ["sun", "mon", "tue", "wed", "thu", "fri", "sat"] for edge in ("start", "end")]


class DentistScheduleBase(BaseModel):
    dentist_code: str = Field(..., min_length=1, max_length=32)
    dentist_name: Optional[str] = Field(None, max_length=120)
    is_pseudonymous: Optional[bool] = True
    employment_type: Literal["full_time", "part_time", "locum"]
    contract_end_date: Optional[date] = None
    status: Literal["active", "inactive"]
    email: EmailStr

    sun: bool = False
    mon: bool = False
    tue: bool = False
    wed: bool = False
    thu: bool = False
    fri: bool = False
    sat: bool = False

    sun_start_time: Optional[str] = None
    sun_end_time: Optional[str] = None
    mon_start_time: Optional[str] = None
    mon_end_time: Optional[str] = None
    tue_start_time: Optional[str] = None
    tue_end_time: Optional[str] = None
    wed_start_time: Optional[str] = None
    wed_end_time: Optional[str] = None
    thu_start_time: Optional[str] = None
    thu_end_time: Optional[str] = None
    fri_start_time: Optional[str] = None
    fri_end_time: Optional[str] = None
    sat_start_time: Optional[str] = None
    sat_end_time: Optional[str] = None

    @field_validator(*TIME_FIELDS)
    @classmethod
    def validate_time(cls, v):
        if v in (None, ""):
            return None
        return normalize_time(v)

    @field_validator("dentist_code")
    @classmethod
    def strip_code(cls, v):
        return v.strip()


class DentistScheduleCreate(DentistScheduleBase):
    pass


class DentistScheduleUpdate(DentistScheduleBase):
    pass


class DentistScheduleResponse(BaseModel):
    id: int
    dentist_code: str
    dentist_name: Optional[str] = None
    is_pseudonymous: bool
    employment_type: str
    contract_end_date: Optional[date] = None
    status: str
    email: str

    sun: bool
    mon: bool
    tue: bool
    wed: bool
    thu: bool
    fri: bool
    sat: bool

    sun_start_time: Optional[str] = None
    sun_end_time: Optional[str] = None
    mon_start_time: Optional[str] = None
    mon_end_time: Optional[str] = None
    tue_start_time: Optional[str] = None
    tue_end_time: Optional[str] = None
    wed_start_time: Optional[str] = None
    wed_end_time: Optional[str] = None
    thu_start_time: Optional[str] = None
    thu_end_time: Optional[str] = None
    fri_start_time: Optional[str] = None
    fri_end_time: Optional[str] = None
    sat_start_time: Optional[str] = None
    sat_end_time: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
