"""Account schemas - login, registration, password reset and staff management"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ...shared.validators import validate_password, validate_ph_mobile


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str
    password_confirmation: Optional[str] = None
    contact_number: Optional[str] = Field(None, max_length=20)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("The name field is required.")
        return v

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)

    @field_validator("password_confirmation")
    @classmethod
    def passwords_match(cls, v, info):
        if v is not None and v != info.data.get("password"):
            raise ValueError("The password confirmation does not match.")
        return v

    @field_validator("contact_number")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_ph_mobile(v)
        return v


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)


class ChangePasswordRequest(BaseModel):
    current_password: str
    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)


class StaffCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str
    contact_number: Optional[str] = Field(None, max_length=20)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)


class DentistAccountCreate(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = Field(None, max_length=255)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    status: str
    contact_number: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
