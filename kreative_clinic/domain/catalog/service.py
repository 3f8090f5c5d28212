"""Service catalog service - clinic services and the bookable list for a date"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Service, User
from ...models_visit import PatientVisit
from ...shared.errors import FieldValidationError
from ...shared.timeutils import clinic_today
from ..clinic_calendar.resolver import ClinicDateResolver
from ..patients.preferred_dentist import dentist_summary, resolve_preferred_dentist
from ..patients.repository import PatientRepository
from .pricing import round_up_to_block
from .repository import CatalogRepository
from .schemas import ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)

PARENT_REQUIRED = "Follow-up services require selecting a parent service."
PARENT_SELF = "A follow-up service must reference a different parent service."
CLOSED_MESSAGE = "Clinic is closed on the selected date."


def _follow_up_fields(service: Service) -> dict:
    children = service.follow_up_children or []
    return {
        "per_teeth_service": bool(service.per_teeth_service),
        "per_tooth_minutes": service.per_tooth_minutes,
        "is_follow_up": bool(service.is_follow_up),
        "follow_up_parent_service_id": service.follow_up_parent_service_id,
        "follow_up_parent_name": service.follow_up_parent.name if service.follow_up_parent else None,
        "follow_up_max_gap_weeks": service.follow_up_max_gap_weeks,
        "has_follow_up_services": bool(children),
        "follow_up_services": [{"id": c.id, "name": c.name} for c in children],
    }


def discount_percent(original_price: float, promo_price: float) -> int:
    if not original_price or original_price <= 0:
        return 100
    return int(min(round(100 - (promo_price / original_price * 100)), 100))


class ServiceCatalogService:
    """Service layer for clinic service management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CatalogRepository()

    def list_services(self) -> list[Service]:
        return self.repo.list_services(self.db)

    def get_service(self, service_id: int) -> Service:
        service = self.repo.get_service(self.db, service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        return service

    def create_service(self, data: ServiceCreate) -> Service:
        fields = data.model_dump()
        fields["estimated_minutes"] = round_up_to_block(fields["estimated_minutes"])

        if fields["is_follow_up"]:
            if not fields.get("follow_up_parent_service_id"):
                raise FieldValidationError.single("follow_up_parent_service_id", PARENT_REQUIRED)
            self._require_parent(fields["follow_up_parent_service_id"])
        else:
            fields["follow_up_parent_service_id"] = None
            fields["follow_up_max_gap_weeks"] = None

        service = self.repo.save(self.db, Service(), **fields)
        logger.info(f"✅ Service created: {service.name} ({service.estimated_minutes} min)")
        return service

    def update_service(self, service_id: int, data: ServiceUpdate) -> Service:
        service = self.get_service(service_id)
        fields = data.model_dump(exclude_unset=True)

        if fields.get("estimated_minutes") is not None:
            fields["estimated_minutes"] = round_up_to_block(fields["estimated_minutes"])

        is_follow_up = fields.get("is_follow_up")
        if is_follow_up is None:
            is_follow_up = service.is_follow_up
        parent_id = fields.get("follow_up_parent_service_id") or service.follow_up_parent_service_id

        if is_follow_up:
            if not parent_id:
                raise FieldValidationError.single("follow_up_parent_service_id", PARENT_REQUIRED)
            if parent_id == service.id:
                raise FieldValidationError.single("follow_up_parent_service_id", PARENT_SELF)
            self._require_parent(parent_id)
        elif "is_follow_up" in fields:
            fields["follow_up_parent_service_id"] = None
            fields["follow_up_max_gap_weeks"] = None

        start = fields.get("special_start_date", service.special_start_date)
        end = fields.get("special_end_date", service.special_end_date)
        if start and end and end < start:
            raise FieldValidationError.single(
                "special_end_date", "The special end date must be a date after or equal to special start date."
            )

        service = self.repo.save(self.db, service, **fields)
        logger.info(f"✅ Service updated: {service.name}")
        return service

    def delete_service(self, service_id: int) -> None:
        service = self.get_service(service_id)
        name = service.name
        self.repo.delete(self.db, service)
        logger.info(f"🗑️ Service deleted: {name}")

    def _require_parent(self, parent_id: int) -> None:
        if not self.repo.get_service(self.db, parent_id):
            raise FieldValidationError.single(
                "follow_up_parent_service_id", "The selected follow up parent service id is invalid."
            )

    # ------------------------------------------------------------------
    # Bookable services for a date
    # ------------------------------------------------------------------

    def available_services(
        self,
        day: date,
        user: Optional[User],
        patient_id: Optional[int] = None,
        with_meta: bool = False,
    ):
        resolver = ClinicDateResolver(self.db)
        if not resolver.resolve(day)["is_open"]:
            return {"message": CLOSED_MESSAGE, "services": []}

        services = self._combined_services(day)

        effective_patient_id = patient_id
        if effective_patient_id is None and user is not None:
            patient = PatientRepository.by_user(self.db, user.id)
            effective_patient_id = patient.id if patient else None

        if user is not None and user.role == "patient":
            eligible = self._eligible_follow_up_ids(services, effective_patient_id, day)
            services = [s for s in services if not s["is_follow_up"] or s["id"] in eligible]

        if not with_meta:
            return services

        return {
            "services": services,
            "metadata": self._booking_metadata(resolver, effective_patient_id, day),
        }

    def _combined_services(self, day: date) -> list[dict]:
        launched = self.repo.launched_on(self.db, day)
        latest_promos = {}
        for promo in sorted(launched, key=lambda p: p.start_date, reverse=True):
            latest_promos.setdefault(promo.service_id, promo)

        regular, special = [], []
        for service in self.repo.list_services(self.db):
            if service.id in latest_promos:
                continue
            if not service.is_special:
                regular.append(
                    {
                        "id": service.id,
                        "name": service.name,
                        "type": "regular",
                        "price": service.price,
                        **_follow_up_fields(service),
                    }
                )
            elif self._special_available(service, day):
                special.append(
                    {
                        "id": service.id,
                        "name": service.name,
                        "type": "special",
                        "price": service.price,
                        "special_until": service.special_end_date.isoformat() if service.special_end_date else None,
                        **_follow_up_fields(service),
                    }
                )

        promos = []
        for promo in latest_promos.values():
            service = promo.service
            promos.append(
                {
                    "id": service.id,
                    "name": service.name,
                    "type": "promo",
                    "original_price": service.price,
                    "promo_price": promo.discounted_price,
                    "discount_percent": discount_percent(service.price, promo.discounted_price),
                    **_follow_up_fields(service),
                }
            )

        return regular + special + promos

    @staticmethod
    def _special_available(service: Service, day: date) -> bool:
        if not service.special_start_date and not service.special_end_date:
            return True
        return bool(
            service.special_start_date
            and service.special_end_date
            and service.special_start_date <= day <= service.special_end_date
        )

    def _eligible_follow_up_ids(self, services: list[dict], patient_id: Optional[int], day: date) -> set:
        """Follow-ups whose parent (or the follow-up itself) was completed recently enough"""
        if not patient_id:
            return set()

        follow_ups = [s for s in services if s["is_follow_up"] and s["follow_up_parent_service_id"]]
        if not follow_ups:
            return set()

        relevant_ids = {s["id"] for s in follow_ups} | {s["follow_up_parent_service_id"] for s in follow_ups}
        visits = (
            self.db.query(PatientVisit)
            .filter(
                PatientVisit.patient_id == patient_id,
                PatientVisit.status == "completed",
                PatientVisit.service_id.in_(relevant_ids),
                PatientVisit.visit_date.isnot(None),
            )
            .all()
        )
        latest = {}
        for visit in visits:
            if visit.service_id not in latest or visit.visit_date > latest[visit.service_id]:
                latest[visit.service_id] = visit.visit_date

        eligible = set()
        for service in follow_ups:
            dates = [d for d in (latest.get(service["follow_up_parent_service_id"]), latest.get(service["id"])) if d]
            if not dates:
                continue
            last_relevant = max(dates)
            gap = service["follow_up_max_gap_weeks"]
            if gap is not None and day > last_relevant + timedelta(weeks=gap):
                continue
            if day < last_relevant:
                continue
            eligible.add(service["id"])
        return eligible

    def _booking_metadata(self, resolver: ClinicDateResolver, patient_id: Optional[int], day: date) -> dict:
        preferred = resolve_preferred_dentist(self.db, patient_id)
        present = False
        highlight_dates = []
        if preferred:
            present = preferred.id in resolver.resolve(day)["active_dentist_ids"]
            window_start = clinic_today() + timedelta(days=1)
            for offset in range(7):
                cursor = window_start + timedelta(days=offset)
                if preferred.id in resolver.resolve(cursor)["active_dentist_ids"]:
                    highlight_dates.append(cursor.isoformat())

        return {
            "preferred_dentist": dentist_summary(preferred),
            "preferred_dentist_present": present,
            "highlight_dates": highlight_dates,
        }
