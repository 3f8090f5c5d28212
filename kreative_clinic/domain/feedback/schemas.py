"""Patient feedback schemas"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .rules import QUESTIONS


class FeedbackPayload(BaseModel):
    answers: dict[str, int]
    dentist_rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)

    @field_validator("answers")
    @classmethod
    def validate_answers(cls, v):
        for key in QUESTIONS:
            if key not in v:
                raise ValueError(f"An answer for {key} is required.")
            if not 1 <= int(v[key]) <= 5:
                raise ValueError("Responses must be numbers between 1 and 5.")
        return {key: int(v[key]) for key in QUESTIONS}

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v):
        if v is None:
            return v
        return v.strip() or None


class FeedbackCreate(FeedbackPayload):
    patient_visit_id: int
