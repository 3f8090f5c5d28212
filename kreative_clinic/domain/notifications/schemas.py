"""Notification admin schemas"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import normalize_ph_phone


class WhitelistCreate(BaseModel):
    phone: str = Field(..., min_length=10, max_length=20)
    label: Optional[str] = Field(None, max_length=255)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        normalized = normalize_ph_phone(v.strip())
        if not normalized or not normalized.startswith("+") or len(normalized) < 11:
            raise ValueError("Phone must be a valid mobile number (09XXXXXXXXX or +639XXXXXXXXX)")
        return normalized


class WhitelistResponse(BaseModel):
    id: int
    phone_e164: str
    label: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TestSmsRequest(BaseModel):
    to: str = Field(..., min_length=10, max_length=20)
    message: str = Field("Test message from the clinic notification service.", min_length=1, max_length=640)
