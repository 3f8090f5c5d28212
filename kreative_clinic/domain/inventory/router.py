"""Inventory router - FastAPI endpoints for items, stock movements and settings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin, require_staff
from ...database import get_db
from ...models import User
from .schemas import (
    AdjustRequest,
    BatchResponse,
    ConsumeRequest,
    ItemCreate,
    ItemUpdate,
    ReceiveRequest,
    SettingsResponse,
    SettingsUpdate,
)
from .service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/inventory", tags=["Inventory"])


def get_inventory_service(db: Session = Depends(get_db)) -> InventoryService:
    """Dependency injection for InventoryService"""
    return InventoryService(db)


@router.get("/items")
async def list_items(
    q: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None),
    current_user: User = Depends(require_staff),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.list_items(q, page, per_page)


@router.post("/items", status_code=201)
async def create_item(
    data: ItemCreate,
    current_user: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.create_item(data)


@router.put("/items/{item_id}")
async def update_item(
    item_id: int,
    data: ItemUpdate,
    current_user: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.update_item(item_id, data)


@router.get("/items/{item_id}/batches", response_model=list[BatchResponse])
async def item_batches(
    item_id: int,
    current_user: User = Depends(require_staff),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.item_batches(item_id)


@router.post("/receive", status_code=201)
async def receive_stock(
    data: ReceiveRequest,
    current_user: User = Depends(require_staff),
    service: InventoryService = Depends(get_inventory_service),
):
    """Record a new batch (admin, or staff when the settings allow it)"""
    return service.receive(data, current_user)


@router.post("/consume")
async def consume_stock(
    data: ConsumeRequest,
    current_user: User = Depends(require_staff),
    service: InventoryService = Depends(get_inventory_service),
):
    """Consume stock first-expiry-first-out across batches"""
    return service.consume(data, current_user)


@router.post("/adjust")
async def adjust_stock(
    data: AdjustRequest,
    current_user: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    """Write off expired or lost stock, or correct a miscount"""
    return service.adjust(data, current_user)


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    current_user: User = Depends(require_staff),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.get_settings()


@router.patch("/settings", response_model=SettingsResponse)
async def update_settings(
    data: SettingsUpdate,
    current_user: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.update_settings(data)
