"""Promo service - planned -> launched -> canceled lifecycle for service discounts"""

import logging
from datetime import date

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import ServiceDiscount
from ...shared.errors import FieldValidationError
from ...shared.timeutils import clinic_now, clinic_today
from ..clinic_calendar.resolver import ClinicDateResolver
from .repository import CatalogRepository
from .schemas import DiscountCreate, DiscountUpdate

logger = logging.getLogger(__name__)


def serialize_promo(promo: ServiceDiscount) -> dict:
    return {
        "id": promo.id,
        "service_id": promo.service_id,
        "service_name": promo.service.name if promo.service else None,
        "original_price": promo.service.price if promo.service else None,
        "start_date": promo.start_date.isoformat(),
        "end_date": promo.end_date.isoformat(),
        "discounted_price": promo.discounted_price,
        "status": promo.status,
        "activated_at": promo.activated_at.isoformat() if promo.activated_at else None,
        "canceled_at": promo.canceled_at.isoformat() if promo.canceled_at else None,
    }


class PromoService:
    """Service layer for promo business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CatalogRepository()

    def _get_promo(self, discount_id: int) -> ServiceDiscount:
        promo = self.repo.get_discount(self.db, discount_id)
        if not promo:
            raise HTTPException(status_code=404, detail="Promo not found")
        return promo

    def list_for_service(self, service_id: int) -> list[dict]:
        if not self.repo.get_service(self.db, service_id):
            raise HTTPException(status_code=404, detail="Service not found")
        return [serialize_promo(p) for p in self.repo.discounts_for_service(self.db, service_id)]

    def create_promo(self, service_id: int, data: DiscountCreate) -> ServiceDiscount:
        service = self.repo.get_service(self.db, service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")

        self._validate_window(service, data.start_date, data.end_date, data.discounted_price)
        promo = self.repo.save(
            self.db,
            ServiceDiscount(service_id=service.id),
            start_date=data.start_date,
            end_date=data.end_date,
            discounted_price=data.discounted_price,
            status="planned",
        )
        logger.info(f"✅ Promo planned for {service.name}: {promo.start_date} -> {promo.end_date}")
        return promo

    def update_promo(self, discount_id: int, data: DiscountUpdate) -> ServiceDiscount:
        promo = self._get_promo(discount_id)
        if promo.status != "planned":
            raise HTTPException(status_code=422, detail="Only planned promos can be edited.")

        updates = data.model_dump(exclude_unset=True)
        start = updates.get("start_date") or promo.start_date
        end = updates.get("end_date") or promo.end_date
        price = updates.get("discounted_price", promo.discounted_price)
        self._validate_window(promo.service, start, end, price, exclude_id=promo.id)

        return self.repo.save(self.db, promo, start_date=start, end_date=end, discounted_price=price)

    def launch_promo(self, discount_id: int) -> ServiceDiscount:
        promo = self._get_promo(discount_id)
        if promo.status != "planned":
            raise HTTPException(status_code=422, detail="Only planned promos can be launched.")
        if promo.end_date < clinic_today():
            raise HTTPException(status_code=422, detail="This promo has already ended.")

        promo = self.repo.save(self.db, promo, status="launched", activated_at=clinic_now())
        logger.info(f"🚀 Promo {promo.id} launched for service {promo.service_id}")
        return promo

    def cancel_promo(self, discount_id: int) -> ServiceDiscount:
        promo = self._get_promo(discount_id)
        if promo.status not in ("planned", "launched"):
            raise HTTPException(status_code=422, detail="This promo can no longer be canceled.")

        promo = self.repo.save(self.db, promo, status="canceled", canceled_at=clinic_now())
        logger.info(f"🗑️ Promo {promo.id} canceled")
        return promo

    def overview(self) -> list[dict]:
        return [serialize_promo(p) for p in self.repo.active_promos(self.db, clinic_today())]

    def archive(self) -> list[dict]:
        return [serialize_promo(p) for p in self.repo.archived_promos(self.db, clinic_today())]

    def _validate_window(self, service, start: date, end: date, price: float, exclude_id: int = None) -> None:
        errors = {}
        if start < clinic_today():
            errors["start_date"] = ["The start date must be a date after or equal to today."]
        if end < start:
            errors["end_date"] = ["The end date must be a date after or equal to start date."]
        if price >= service.price:
            errors["discounted_price"] = ["The discounted price must be lower than the original price."]
        if errors:
            raise FieldValidationError(errors)

        resolver = ClinicDateResolver(self.db)
        for field, day in (("start_date", start), ("end_date", end)):
            if not resolver.resolve(day)["is_open"]:
                raise FieldValidationError.single(field, f"{day.isoformat()} falls on a clinic closed day.")

        if self.repo.overlapping_discount(self.db, service.id, start, end, exclude_id):
            raise FieldValidationError.single("start_date", "This promo overlaps an existing promo for the service.")
