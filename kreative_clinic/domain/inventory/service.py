"""Inventory service - items, stock receipt, FEFO consumption and settings"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import queue_admin_email
from ...email_templates import low_stock_alert_template
from ...models import User
from ...models_inventory import InventoryBatch, InventoryItem
from ...models_visit import PatientVisit
from ...shared.errors import FieldValidationError
from ...shared.pagination import clamp_per_page, paginate
from ...shared.timeutils import clinic_now
from ..notifications.inbox import notify_roles
from .repository import InventoryRepository
from .schemas import AdjustRequest, ConsumeRequest, ItemCreate, ItemResponse, ItemUpdate, ReceiveRequest, SettingsUpdate

logger = logging.getLogger(__name__)


def serialize_item(db: Session, item: InventoryItem) -> dict:
    data = ItemResponse.model_validate(item).model_dump(mode="json")
    total = InventoryRepository.total_on_hand(db, item.id)
    data["total_on_hand"] = total
    data["is_low_stock"] = item.low_stock_threshold > 0 and total <= item.low_stock_threshold
    return data


def consume_stock(
    db: Session,
    item_id: int,
    quantity: float,
    user_id: Optional[int],
    ref_type: Optional[str] = None,
    ref_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> list[dict]:
    """
    Take `quantity` from the item's batches, earliest expiry first.
    Does not commit; the caller owns the transaction and runs
    check_low_stock once it has committed.

    Returns:
        list of {batch_id, quantity} actually taken
    """
    item = InventoryRepository.get_item(db, item_id)
    if not item:
        raise FieldValidationError.single("item_id", "The selected item id is invalid.")

    batches = InventoryRepository.fefo_batches(db, item_id)
    available = sum(float(b.qty_on_hand) for b in batches)
    if quantity > available:
        logger.warning(f"⚠️ Insufficient stock for {item.name}: requested {quantity:g}, on hand {available:g}")
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Insufficient stock.",
                "item": item.name,
                "requested": quantity,
                "available": available,
            },
        )

    taken = []
    remaining = float(quantity)
    for batch in batches:
        if remaining <= 0:
            break
        take = min(remaining, float(batch.qty_on_hand))
        batch.qty_on_hand = float(batch.qty_on_hand) - take
        InventoryRepository.add_movement(
            db,
            item_id=item.id,
            batch_id=batch.id,
            type="consume",
            quantity=take,
            ref_type=ref_type,
            ref_id=ref_id,
            notes=notes,
            user_id=user_id,
        )
        taken.append({"batch_id": batch.id, "quantity": take})
        remaining -= take

    db.flush()
    return taken


def check_low_stock(db: Session, item: InventoryItem) -> bool:
    """Queue a low-stock email and bell notice unless one went out within the debounce window"""
    if item.low_stock_threshold <= 0:
        return False

    total = InventoryRepository.total_on_hand(db, item.id)
    if total > item.low_stock_threshold:
        return False

    settings = InventoryRepository.get_settings(db)
    now = clinic_now()
    if item.low_stock_notified_at and now - item.low_stock_notified_at < timedelta(
        hours=settings.low_stock_debounce_hours
    ):
        return False

    item.low_stock_notified_at = now
    queue_admin_email(
        db,
        f"Low stock: {item.name}",
        low_stock_alert_template(item.name, total, item.low_stock_threshold, item.unit),
    )
    notify_roles(
        db,
        ["admin", "staff"],
        "low_stock",
        f"Low stock: {item.name}",
        f"{total:g} {item.unit} left (threshold {item.low_stock_threshold}).",
        severity="warning",
        data={"item_id": item.id, "sku_code": item.sku_code, "total_on_hand": total},
    )
    db.commit()
    logger.warning(f"⚠️ Low stock alert for {item.name}: {total:g} {item.unit} left")
    return True


class InventoryService:
    """Service layer for inventory management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InventoryRepository()

    def get_item(self, item_id: int) -> InventoryItem:
        item = self.repo.get_item(self.db, item_id)
        if not item:
            raise HTTPException(status_code=404, detail="Inventory item not found")
        return item

    def list_items(self, search: Optional[str], page: int, per_page: Optional[int]) -> dict:
        query = self.repo.items_query(self.db, search)
        return paginate(query, page, clamp_per_page(per_page, default=20), lambda i: serialize_item(self.db, i))

    def create_item(self, data: ItemCreate) -> dict:
        if self.repo.sku_exists(self.db, data.sku_code):
            raise FieldValidationError.single("sku_code", "The sku code has already been taken.")
        if data.is_sellable and not data.patient_price:
            raise FieldValidationError.single("patient_price", "A patient price is required for sellable items.")

        item = InventoryItem(**data.model_dump())
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"✅ Inventory item created: {item.name} ({item.sku_code})")
        return serialize_item(self.db, item)

    def update_item(self, item_id: int, data: ItemUpdate) -> dict:
        item = self.get_item(item_id)
        fields = data.model_dump(exclude_unset=True)
        if fields.get("sku_code") and self.repo.sku_exists(self.db, fields["sku_code"], exclude_id=item.id):
            raise FieldValidationError.single("sku_code", "The sku code has already been taken.")

        is_sellable = fields.get("is_sellable", item.is_sellable)
        price = fields.get("patient_price", item.patient_price)
        if is_sellable and not price:
            raise FieldValidationError.single("patient_price", "A patient price is required for sellable items.")

        item = self.repo.save(self.db, item, **fields)
        logger.info(f"✅ Inventory item updated: {item.name}")
        return serialize_item(self.db, item)

    def item_batches(self, item_id: int) -> list[InventoryBatch]:
        self.get_item(item_id)
        return self.repo.batches(self.db, item_id)

    def receive(self, data: ReceiveRequest, user: User) -> dict:
        if user.role == "staff" and not self.repo.get_settings(self.db).staff_can_receive:
            raise HTTPException(status_code=403, detail="Staff are not allowed to receive stock.")

        item = self.get_item(data.item_id)
        batch = InventoryBatch(
            item_id=item.id,
            lot_number=data.lot_number,
            batch_number=data.batch_number,
            expiry_date=data.expiry_date,
            qty_received=data.qty_received,
            qty_on_hand=data.qty_received,
            cost_per_unit=data.cost_per_unit,
            supplier_name=data.supplier_name,
            invoice_no=data.invoice_no,
            received_at=data.received_at or clinic_now(),
            received_by=user.id,
        )
        self.db.add(batch)
        self.db.flush()
        self.repo.add_movement(
            self.db,
            item_id=item.id,
            batch_id=batch.id,
            type="receive",
            quantity=data.qty_received,
            notes=data.notes,
            user_id=user.id,
        )
        self.db.commit()
        self.db.refresh(batch)

        logger.info(f"📥 Received {data.qty_received:g} {item.unit} of {item.name} (batch #{batch.id})")
        return {"message": "Stock received.", "batch_id": batch.id, "item": serialize_item(self.db, item)}

    def consume(self, data: ConsumeRequest, user: User) -> dict:
        if user.role == "staff":
            if data.ref_type != "visit" or not data.ref_id:
                raise FieldValidationError.single("ref_id", "Staff must consume stock against a finished visit.")
            visit = self.db.query(PatientVisit).filter(PatientVisit.id == data.ref_id).first()
            if not visit or visit.status != "completed":
                raise FieldValidationError.single("ref_id", "Staff must consume stock against a finished visit.")

        try:
            taken = consume_stock(
                self.db, data.item_id, data.quantity, user.id, data.ref_type, data.ref_id, data.notes
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        item = self.get_item(data.item_id)
        check_low_stock(self.db, item)
        logger.info(f"✅ Consumed {data.quantity:g} {item.unit} of {item.name} from {len(taken)} batch(es)")
        return {"message": "Stock consumed.", "batches": taken, "item": serialize_item(self.db, item)}

    def adjust(self, data: AdjustRequest, user: User) -> dict:
        """Correct one batch for expiry, loss or a recount"""
        item = self.get_item(data.item_id)
        batch = self.repo.get_batch(self.db, data.batch_id)
        if not batch or batch.item_id != item.id:
            raise FieldValidationError.single("batch_id", "The selected batch does not belong to this item.")
        if data.direction == "increase" and data.adjust_reason != "count_correction":
            raise FieldValidationError.single("adjust_reason", "Only a count correction can increase stock.")
        if data.direction == "decrease" and data.quantity > float(batch.qty_on_hand):
            raise FieldValidationError.single(
                "quantity", f"Only {float(batch.qty_on_hand):g} {item.unit} left in this batch."
            )

        delta = data.quantity if data.direction == "increase" else -data.quantity
        batch.qty_on_hand = float(batch.qty_on_hand) + delta
        # Quantity is stored positive; the batch carries the sign
        self.repo.add_movement(
            self.db,
            item_id=item.id,
            batch_id=batch.id,
            type="adjust",
            quantity=data.quantity,
            adjust_reason=data.adjust_reason,
            notes=data.notes,
            user_id=user.id,
        )
        self.db.commit()

        if data.direction == "decrease":
            check_low_stock(self.db, item)
        logger.info(
            f"🔧 Adjusted {item.name} batch #{batch.id} by {delta:+g} {item.unit} ({data.adjust_reason})"
        )
        return {
            "message": "Stock adjusted.",
            "batch_id": batch.id,
            "qty_on_hand": float(batch.qty_on_hand),
            "item": serialize_item(self.db, item),
        }

    def get_settings(self):
        return self.repo.get_settings(self.db)

    def update_settings(self, data: SettingsUpdate):
        settings = self.repo.get_settings(self.db)
        settings = self.repo.save(self.db, settings, **data.model_dump(exclude_unset=True))
        logger.info("🔧 Inventory settings updated")
        return settings
