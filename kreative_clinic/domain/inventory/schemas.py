"""Inventory domain schemas - Pydantic models for validation"""

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ItemType = Literal["drug", "equipment", "supply", "other"]


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku_code: str = Field(..., min_length=1, max_length=64)
    type: ItemType = "supply"
    unit: str = Field("pcs", min_length=1, max_length=20)
    low_stock_threshold: int = Field(0, ge=0)
    default_pack_size: Optional[int] = Field(None, ge=1)
    is_controlled: bool = False
    is_sellable: bool = False
    patient_price: Optional[float] = Field(None, ge=0)
    sellable_notes: Optional[str] = None

    @field_validator("sku_code")
    @classmethod
    def normalize_sku(cls, v):
        return v.strip().upper()

    @field_validator("patient_price")
    @classmethod
    def empty_price(cls, v):
        return v if v not in ("", None) else None


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku_code: Optional[str] = Field(None, min_length=1, max_length=64)
    type: Optional[ItemType] = None
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    default_pack_size: Optional[int] = Field(None, ge=1)
    is_controlled: Optional[bool] = None
    is_sellable: Optional[bool] = None
    patient_price: Optional[float] = Field(None, ge=0)
    sellable_notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("sku_code")
    @classmethod
    def normalize_sku(cls, v):
        return v.strip().upper() if v else v


class ReceiveRequest(BaseModel):
    item_id: int
    qty_received: float = Field(..., gt=0)
    received_at: Optional[datetime.datetime] = None
    cost_per_unit: Optional[float] = Field(None, ge=0)
    lot_number: Optional[str] = Field(None, max_length=100)
    batch_number: Optional[str] = Field(None, max_length=100)
    expiry_date: Optional[datetime.date] = None
    supplier_name: Optional[str] = Field(None, max_length=255)
    invoice_no: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class ConsumeRequest(BaseModel):
    item_id: int
    quantity: float = Field(..., gt=0)
    ref_type: Optional[Literal["visit", "appointment", "other"]] = None
    ref_id: Optional[int] = None
    notes: Optional[str] = None


class AdjustRequest(BaseModel):
    item_id: int
    batch_id: int
    quantity: float = Field(..., gt=0)
    direction: Literal["decrease", "increase"] = "decrease"
    adjust_reason: Literal["expired", "theft", "damaged", "count_correction", "other"]
    notes: Optional[str] = None


class SettingsUpdate(BaseModel):
    near_expiry_days: Optional[int] = Field(None, ge=1, le=365)
    low_stock_debounce_hours: Optional[int] = Field(None, ge=1, le=168)
    staff_can_receive: Optional[bool] = None


class ItemResponse(BaseModel):
    id: int
    name: str
    sku_code: str
    type: str
    unit: str
    low_stock_threshold: int
    default_pack_size: Optional[int] = None
    is_controlled: bool
    is_sellable: bool
    patient_price: Optional[float] = None
    sellable_notes: Optional[str] = None
    is_active: bool
    total_on_hand: float = 0
    is_low_stock: bool = False

    model_config = ConfigDict(from_attributes=True)


class BatchResponse(BaseModel):
    id: int
    item_id: int
    lot_number: Optional[str] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[datetime.date] = None
    qty_received: float
    qty_on_hand: float
    cost_per_unit: Optional[float] = None
    supplier_name: Optional[str] = None
    invoice_no: Optional[str] = None
    received_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class SettingsResponse(BaseModel):
    near_expiry_days: int
    low_stock_debounce_hours: int
    staff_can_receive: bool

    model_config = ConfigDict(from_attributes=True)
