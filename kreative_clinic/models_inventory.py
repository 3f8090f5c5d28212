from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    sku_code = Column(String(64), unique=True, nullable=False)
    type = Column(String(20), nullable=False, default="supply")  # drug, equipment, supply, other
    unit = Column(String(20), nullable=False, default="pcs")
    low_stock_threshold = Column(Integer, nullable=False, default=0)
    default_pack_size = Column(Integer, nullable=True)
    is_controlled = Column(Boolean, default=False, nullable=False)
    is_sellable = Column(Boolean, default=False, nullable=False)
    patient_price = Column(Float, nullable=True)
    sellable_notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    low_stock_notified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    batches = relationship("InventoryBatch", back_populates="item", cascade="all, delete-orphan")


class InventoryBatch(Base):
    __tablename__ = "inventory_batches"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False, index=True)
    lot_number = Column(String(100), nullable=True)
    batch_number = Column(String(100), nullable=True)
    expiry_date = Column(Date, nullable=True, index=True)
    qty_received = Column(Float, nullable=False, default=0)
    qty_on_hand = Column(Float, nullable=False, default=0)
    cost_per_unit = Column(Float, nullable=True)
    supplier_name = Column(String(255), nullable=True)
    invoice_no = Column(String(100), nullable=True)
    received_at = Column(DateTime, nullable=False)
    received_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    item = relationship("InventoryItem", back_populates="batches")


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("inventory_batches.id"), nullable=True)
    type = Column(String(20), nullable=False)  # receive, consume, adjust
    quantity = Column(Float, nullable=False)
    adjust_reason = Column(String(30), nullable=True)  # expired, theft, damaged, count_correction, other
    ref_type = Column(String(20), nullable=True)  # visit, appointment, other
    ref_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class InventorySettings(Base):
    __tablename__ = "inventory_settings"

    id = Column(Integer, primary_key=True, index=True)
    near_expiry_days = Column(Integer, nullable=False, default=30)
    low_stock_debounce_hours = Column(Integer, nullable=False, default=24)
    staff_can_receive = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
