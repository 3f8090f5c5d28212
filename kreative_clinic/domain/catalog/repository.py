"""Service catalog repository - Database operations for services and promos"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Service, ServiceDiscount


class CatalogRepository:
    """Repository for service and promo database operations"""

    @staticmethod
    def list_services(db: Session) -> list[Service]:
        return (
            db.query(Service)
            .options(joinedload(Service.follow_up_parent))
            .order_by(Service.name.asc())
            .all()
        )

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def save(db: Session, entity, **fields):
        for key, value in fields.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity

    @staticmethod
    def delete(db: Session, entity) -> None:
        db.delete(entity)
        db.commit()

    # Promos

    @staticmethod
    def get_discount(db: Session, discount_id: int) -> Optional[ServiceDiscount]:
        return db.query(ServiceDiscount).filter(ServiceDiscount.id == discount_id).first()

    @staticmethod
    def discounts_for_service(db: Session, service_id: int) -> list[ServiceDiscount]:
        return (
            db.query(ServiceDiscount)
            .filter(ServiceDiscount.service_id == service_id)
            .order_by(ServiceDiscount.start_date.desc())
            .all()
        )

    @staticmethod
    def overlapping_discount(
        db: Session, service_id: int, start: date, end: date, exclude_id: Optional[int] = None
    ) -> Optional[ServiceDiscount]:
        query = db.query(ServiceDiscount).filter(
            ServiceDiscount.service_id == service_id,
            ServiceDiscount.status != "canceled",
            ServiceDiscount.start_date <= end,
            ServiceDiscount.end_date >= start,
        )
        if exclude_id:
            query = query.filter(ServiceDiscount.id != exclude_id)
        return query.first()

    @staticmethod
    def launched_on(db: Session, day: date) -> list[ServiceDiscount]:
        return (
            db.query(ServiceDiscount)
            .options(joinedload(ServiceDiscount.service))
            .filter(
                ServiceDiscount.status == "launched",
                ServiceDiscount.start_date <= day,
                ServiceDiscount.end_date >= day,
            )
            .all()
        )

    @staticmethod
    def active_promos(db: Session, today: date) -> list[ServiceDiscount]:
        return (
            db.query(ServiceDiscount)
            .options(joinedload(ServiceDiscount.service))
            .filter(
                ServiceDiscount.status.in_(["planned", "launched"]),
                ServiceDiscount.end_date >= today,
            )
            .order_by(ServiceDiscount.start_date.asc())
            .all()
        )

    @staticmethod
    def archived_promos(db: Session, today: date) -> list[ServiceDiscount]:
        return (
            db.query(ServiceDiscount)
            .options(joinedload(ServiceDiscount.service))
            .filter((ServiceDiscount.status == "canceled") | (ServiceDiscount.end_date < today))
            .order_by(ServiceDiscount.end_date.desc())
            .all()
        )
