"""Service catalog router - FastAPI endpoints for services, promos and bookable services"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from .promo_service import PromoService, serialize_promo
from .schemas import DiscountCreate, DiscountUpdate, ServiceCreate, ServiceResponse, ServiceUpdate
from .service import ServiceCatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Services"])


def get_catalog_service(db: Session = Depends(get_db)) -> ServiceCatalogService:
    """Dependency injection for ServiceCatalogService"""
    return ServiceCatalogService(db)


def get_promo_service(db: Session = Depends(get_db)) -> PromoService:
    """Dependency injection for PromoService"""
    return PromoService(db)


# ============================================================================
# SERVICES
# ============================================================================


@router.get("/services", response_model=list[ServiceResponse])
async def list_services(
    current_user: User = Depends(get_current_user),
    service: ServiceCatalogService = Depends(get_catalog_service),
):
    return service.list_services()


@router.get("/services/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: int,
    current_user: User = Depends(get_current_user),
    service: ServiceCatalogService = Depends(get_catalog_service),
):
    return service.get_service(service_id)


@router.post("/services", response_model=ServiceResponse, status_code=201)
async def create_service(
    data: ServiceCreate,
    current_user: User = Depends(require_admin),
    service: ServiceCatalogService = Depends(get_catalog_service),
):
    """Create a service (estimated minutes rounded up to 30-minute blocks)"""
    return service.create_service(data)


@router.put("/services/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    current_user: User = Depends(require_admin),
    service: ServiceCatalogService = Depends(get_catalog_service),
):
    return service.update_service(service_id, data)


@router.delete("/services/{service_id}", status_code=204)
async def delete_service(
    service_id: int,
    current_user: User = Depends(require_admin),
    service: ServiceCatalogService = Depends(get_catalog_service),
):
    service.delete_service(service_id)
    return Response(status_code=204)


@router.get("/appointment/available-services")
async def available_services(
    date: date = Query(...),
    patient_id: Optional[int] = Query(None),
    with_meta: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: ServiceCatalogService = Depends(get_catalog_service),
):
    """Regular, special and promo services bookable on a date"""
    return service.available_services(date, current_user, patient_id, with_meta)


# ============================================================================
# PROMOS
# ============================================================================


@router.get("/services/{service_id}/discounts")
async def list_service_discounts(
    service_id: int,
    current_user: User = Depends(require_admin),
    promos: PromoService = Depends(get_promo_service),
):
    return promos.list_for_service(service_id)


@router.post("/services/{service_id}/discounts", status_code=201)
async def create_discount(
    service_id: int,
    data: DiscountCreate,
    current_user: User = Depends(require_admin),
    promos: PromoService = Depends(get_promo_service),
):
    return serialize_promo(promos.create_promo(service_id, data))


@router.put("/discounts/{discount_id}")
async def update_discount(
    discount_id: int,
    data: DiscountUpdate,
    current_user: User = Depends(require_admin),
    promos: PromoService = Depends(get_promo_service),
):
    return serialize_promo(promos.update_promo(discount_id, data))


@router.post("/discounts/{discount_id}/launch")
async def launch_discount(
    discount_id: int,
    current_user: User = Depends(require_admin),
    promos: PromoService = Depends(get_promo_service),
):
    return serialize_promo(promos.launch_promo(discount_id))


@router.post("/discounts/{discount_id}/cancel")
async def cancel_discount(
    discount_id: int,
    current_user: User = Depends(require_admin),
    promos: PromoService = Depends(get_promo_service),
):
    return serialize_promo(promos.cancel_promo(discount_id))


@router.get("/discounts-overview")
async def discounts_overview(
    current_user: User = Depends(require_admin),
    promos: PromoService = Depends(get_promo_service),
):
    """Planned and launched promos that have not ended"""
    return promos.overview()


@router.get("/discounts-archive")
async def discounts_archive(
    current_user: User = Depends(require_admin),
    promos: PromoService = Depends(get_promo_service),
):
    return promos.archive()
