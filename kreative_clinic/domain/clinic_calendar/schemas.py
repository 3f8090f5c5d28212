"""Clinic calendar schemas - Pydantic models for validation"""

import datetime
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.timeutils import normalize_time


def _time_or_none(v):
    if v in (None, ""):
        return None
    return normalize_time(v)


class WeeklyScheduleUpdate(BaseModel):
    is_open: Optional[bool] = None
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    note: Optional[str] = Field(None, max_length=255)

    @field_validator("open_time", "close_time")
    @classmethod
    def validate_time(cls, v):
        return _time_or_none(v)


class WeeklyScheduleResponse(BaseModel):
    id: int
    weekday: int
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    note: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CalendarEntryCreate(BaseModel):
    date: date
    is_open: bool = True
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    note: Optional[str] = Field(None, max_length=255)
    max_per_block: Optional[int] = Field(None, ge=0)

    @field_validator("open_time", "close_time")
    @classmethod
    def validate_time(cls, v):
        return _time_or_none(v)


class CalendarEntryUpdate(BaseModel):
    date: Optional[datetime.date] = None
    is_open: Optional[bool] = None
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    note: Optional[str] = Field(None, max_length=255)
    max_per_block: Optional[int] = Field(None, ge=0)

    @field_validator("open_time", "close_time")
    @classmethod
    def validate_time(cls, v):
        return _time_or_none(v)


class CalendarEntryResponse(BaseModel):
    id: int
    date: date
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    note: Optional[str] = None
    max_per_block: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)
