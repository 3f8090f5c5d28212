"""Visit domain schemas - Pydantic models for validation"""

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ...shared.validators import normalize_reference_code


class VisitCreate(BaseModel):
    visit_type: Literal["walkin", "appointment"]
    reference_code: Optional[str] = None

    @field_validator("reference_code")
    @classmethod
    def normalize_code(cls, v):
        if v is None:
            return v
        code = normalize_reference_code(v)
        if len(code) != 8:
            raise ValueError("The reference code must be 8 characters.")
        return code


class MedicalHistoryRequest(BaseModel):
    """Health questionnaire; unknown keys are dropped"""

    model_config = ConfigDict(extra="ignore")

    # Patient information
    full_name: Optional[str] = Field(None, max_length=255)
    age: Optional[int] = Field(None, ge=0, le=150)
    sex: Optional[Literal["male", "female"]] = None
    address: Optional[str] = Field(None, max_length=500)
    contact_number: Optional[str] = Field(None, max_length=20)
    occupation: Optional[str] = Field(None, max_length=255)
    date_of_birth: Optional[datetime.date] = None
    email: Optional[EmailStr] = None
    previous_dentist: Optional[str] = Field(None, max_length=255)
    last_dental_visit: Optional[datetime.date] = None
    physician_name: Optional[str] = Field(None, max_length=255)

    # Health questions
    in_good_health: Optional[bool] = None
    under_medical_treatment: Optional[bool] = None
    medical_treatment_details: Optional[str] = None
    serious_illness_surgery: Optional[bool] = None
    illness_surgery_details: Optional[str] = None
    hospitalized: Optional[bool] = None
    hospitalization_details: Optional[str] = None
    taking_medications: Optional[bool] = None
    medications_list: Optional[str] = None
    uses_tobacco: Optional[bool] = None
    uses_alcohol_drugs: Optional[bool] = None

    # Allergies
    allergic_local_anesthetic: Optional[bool] = None
    allergic_penicillin: Optional[bool] = None
    allergic_sulfa: Optional[bool] = None
    allergic_aspirin: Optional[bool] = None
    allergic_latex: Optional[bool] = None
    allergic_others: Optional[str] = None

    # Women only
    is_pregnant: Optional[bool] = None
    is_nursing: Optional[bool] = None
    taking_birth_control: Optional[bool] = None

    # Vitals
    blood_type: Optional[str] = Field(None, max_length=10)
    blood_pressure: Optional[str] = Field(None, max_length=50)
    bleeding_time: Optional[str] = Field(None, max_length=50)

    # Conditions
    high_blood_pressure: Optional[bool] = None
    low_blood_pressure: Optional[bool] = None
    heart_disease: Optional[bool] = None
    heart_murmur: Optional[bool] = None
    chest_pain: Optional[bool] = None
    stroke: Optional[bool] = None
    diabetes: Optional[bool] = None
    hepatitis: Optional[bool] = None
    tuberculosis: Optional[bool] = None
    kidney_disease: Optional[bool] = None
    cancer: Optional[bool] = None
    asthma: Optional[bool] = None
    anemia: Optional[bool] = None
    arthritis: Optional[bool] = None
    epilepsy: Optional[bool] = None
    aids_hiv: Optional[bool] = None
    stomach_troubles: Optional[bool] = None
    thyroid_problems: Optional[bool] = None
    other_conditions: Optional[str] = None


class SendVisitCodeRequest(BaseModel):
    visit_id: int
    dentist_schedule_id: int


class VisitRejectRequest(BaseModel):
    reason: Literal["human_error", "left", "line_too_long", "inquiry_only"]
    offered_appointment: bool = False


class StockLine(BaseModel):
    item_id: int
    quantity: float = Field(..., gt=0)
    notes: Optional[str] = None


class CompleteVisitRequest(BaseModel):
    stock_items: list[StockLine] = []
    dentist_notes: Optional[str] = Field(None, max_length=2000)
    findings: Optional[str] = Field(None, max_length=2000)
    treatment_plan: Optional[str] = Field(None, max_length=2000)
    teeth_treated: Optional[str] = Field(None, max_length=200)
    payment_status: Literal["paid", "hmo_fully_covered", "partial", "unpaid"]
    onsite_payment_amount: Optional[float] = Field(None, ge=0)
    payment_method_change: Optional[Literal["maya_to_cash"]] = None


class DentistNotesRequest(BaseModel):
    dentist_notes: Optional[str] = Field(None, max_length=2000)
    findings: Optional[str] = Field(None, max_length=2000)
    treatment_plan: Optional[str] = Field(None, max_length=2000)
    teeth_treated: Optional[str] = Field(None, max_length=200)


class ViewNotesRequest(BaseModel):
    password: str = Field(..., min_length=1)


class UpdateVisitPatientRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    contact_number: Optional[str] = Field(None, max_length=20)
    service_id: Optional[int] = None


class LinkExistingRequest(BaseModel):
    target_patient_id: int
    service_id: Optional[int] = None
