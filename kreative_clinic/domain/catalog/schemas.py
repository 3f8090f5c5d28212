"""Service catalog schemas - Pydantic models for services and promos"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class ServiceCreate(BaseModel):
    """Schema for creating a clinic service"""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    estimated_minutes: int = Field(..., ge=1)
    per_teeth_service: bool = False
    per_tooth_minutes: Optional[int] = Field(None, ge=1)
    is_special: bool = False
    special_start_date: Optional[date] = None
    special_end_date: Optional[date] = None
    is_excluded_from_analytics: bool = False
    is_follow_up: bool = False
    follow_up_parent_service_id: Optional[int] = None
    follow_up_max_gap_weeks: Optional[int] = Field(None, ge=0)

    @field_validator("special_end_date")
    @classmethod
    def check_special_window(cls, v, info: ValidationInfo):
        start = info.data.get("special_start_date")
        if v and start and v < start:
            raise ValueError("The special end date must be a date after or equal to special start date.")
        return v


class ServiceUpdate(BaseModel):
    """Schema for partial service updates"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    estimated_minutes: Optional[int] = Field(None, ge=1)
    per_teeth_service: Optional[bool] = None
    per_tooth_minutes: Optional[int] = Field(None, ge=1)
    is_special: Optional[bool] = None
    special_start_date: Optional[date] = None
    special_end_date: Optional[date] = None
    is_excluded_from_analytics: Optional[bool] = None
    is_follow_up: Optional[bool] = None
    follow_up_parent_service_id: Optional[int] = None
    follow_up_max_gap_weeks: Optional[int] = Field(None, ge=0)


class FollowUpParent(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    estimated_minutes: int
    per_teeth_service: bool
    per_tooth_minutes: Optional[int] = None
    is_special: bool
    special_start_date: Optional[date] = None
    special_end_date: Optional[date] = None
    is_excluded_from_analytics: bool
    is_follow_up: bool
    follow_up_parent_service_id: Optional[int] = None
    follow_up_max_gap_weeks: Optional[int] = None
    follow_up_parent: Optional[FollowUpParent] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# PROMOS
# ============================================================================


class DiscountCreate(BaseModel):
    start_date: date
    end_date: date
    discounted_price: float = Field(..., ge=0)


class DiscountUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    discounted_price: Optional[float] = Field(None, ge=0)


class DiscountResponse(BaseModel):
    id: int
    service_id: int
    start_date: date
    end_date: date
    discounted_price: float
    status: str
    activated_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
