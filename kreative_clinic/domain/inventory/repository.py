"""Inventory repository - Database operations for items, batches and movements"""

from datetime import date
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from ...models_inventory import InventoryBatch, InventoryItem, InventoryMovement, InventorySettings


class InventoryRepository:
    """Repository for inventory database operations"""

    @staticmethod
    def get_item(db: Session, item_id: int) -> Optional[InventoryItem]:
        return db.query(InventoryItem).filter(InventoryItem.id == item_id).first()

    @staticmethod
    def sku_exists(db: Session, sku_code: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(InventoryItem.id).filter(func.upper(InventoryItem.sku_code) == sku_code.upper())
        if exclude_id:
            query = query.filter(InventoryItem.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def items_query(db: Session, search: Optional[str] = None) -> Query:
        query = db.query(InventoryItem)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(InventoryItem.name.ilike(term), InventoryItem.sku_code.ilike(term)))
        return query.order_by(InventoryItem.name.asc())

    @staticmethod
    def total_on_hand(db: Session, item_id: int) -> float:
        total = (
            db.query(func.coalesce(func.sum(InventoryBatch.qty_on_hand), 0))
            .filter(InventoryBatch.item_id == item_id)
            .scalar()
        )
        return float(total or 0)

    @staticmethod
    def batches(db: Session, item_id: int) -> list[InventoryBatch]:
        return (
            db.query(InventoryBatch)
            .filter(InventoryBatch.item_id == item_id)
            .order_by(
                InventoryBatch.expiry_date.is_(None),
                InventoryBatch.expiry_date.asc(),
                InventoryBatch.received_at.asc(),
            )
            .all()
        )

    @staticmethod
    def get_batch(db: Session, batch_id: int) -> Optional[InventoryBatch]:
        return db.query(InventoryBatch).filter(InventoryBatch.id == batch_id).with_for_update().first()

    @staticmethod
    def fefo_batches(db: Session, item_id: int) -> list[InventoryBatch]:
        """Batches with stock, earliest expiry first and undated last"""
        return (
            db.query(InventoryBatch)
            .filter(InventoryBatch.item_id == item_id, InventoryBatch.qty_on_hand > 0)
            .order_by(
                InventoryBatch.expiry_date.is_(None),
                InventoryBatch.expiry_date.asc(),
                InventoryBatch.received_at.asc(),
            )
            .with_for_update()
            .all()
        )

    @staticmethod
    def near_expiry(db: Session, today: date, until: date) -> list[InventoryBatch]:
        return (
            db.query(InventoryBatch)
            .filter(
                InventoryBatch.qty_on_hand > 0,
                InventoryBatch.expiry_date.isnot(None),
                InventoryBatch.expiry_date >= today,
                InventoryBatch.expiry_date <= until,
            )
            .order_by(InventoryBatch.expiry_date.asc())
            .all()
        )

    @staticmethod
    def add_movement(db: Session, **fields) -> InventoryMovement:
        movement = InventoryMovement(**fields)
        db.add(movement)
        return movement

    @staticmethod
    def get_settings(db: Session) -> InventorySettings:
        settings = db.query(InventorySettings).first()
        if not settings:
            settings = InventorySettings(near_expiry_days=30, low_stock_debounce_hours=24, staff_can_receive=False)
            db.add(settings)
            db.commit()
            db.refresh(settings)
        return settings

    @staticmethod
    def save(db: Session, entity, **fields):
        for key, value in fields.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity
