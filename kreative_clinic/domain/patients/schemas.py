"""Patient domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import validate_ph_mobile


class PatientCreate(BaseModel):
    """Schema for staff-created patient records"""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    middle_name: Optional[str] = Field(None, max_length=100)
    birthdate: Optional[date] = None
    sex: Optional[Literal["male", "female"]] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None

    @field_validator("contact_number")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_ph_mobile(v)
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, v):
        return v.strip()


class LinkSelfRequest(PatientCreate):
    pass


class LinkUserRequest(BaseModel):
    user_id: int


class PatientResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    middle_name: Optional[str] = None
    birthdate: Optional[date] = None
    sex: Optional[str] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None
    user_id: Optional[int] = None
    is_linked: bool
    flag_manual_review: bool
    archived_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HmoCreate(BaseModel):
    provider_name: str = Field(..., min_length=1, max_length=255)
    member_id: Optional[str] = Field(None, max_length=100)
    holder_name: Optional[str] = Field(None, max_length=255)
    valid_until: Optional[date] = None
    is_primary: bool = False


class HmoUpdate(BaseModel):
    provider_name: Optional[str] = Field(None, min_length=1, max_length=255)
    member_id: Optional[str] = Field(None, max_length=100)
    holder_name: Optional[str] = Field(None, max_length=255)
    valid_until: Optional[date] = None
    is_primary: Optional[bool] = None


class HmoResponse(BaseModel):
    id: int
    patient_id: int
    provider_name: str
    member_id: Optional[str] = None
    holder_name: Optional[str] = None
    valid_until: Optional[date] = None
    is_primary: bool

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# PATIENT MANAGER
# ============================================================================


class WarningRequest(BaseModel):
    message: Optional[str] = Field(None, max_length=500)


class BlockRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    block_type: Literal["account", "ip", "both"] = "account"


class UnblockRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class NoteRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=1000)
