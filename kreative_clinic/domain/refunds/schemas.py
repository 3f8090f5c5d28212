"""Refund request schemas"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class RefundAction(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=1000)


class ExtendDeadlineRequest(BaseModel):
    new_deadline: date
    reason: str = Field(..., min_length=1, max_length=500)
