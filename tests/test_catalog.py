from datetime import timedelta

import pytest

from kreative_clinic.domain.catalog.pricing import (
    active_discount,
    calculate_estimated_minutes,
    calculate_total_price,
    get_price_for_date,
    round_up_to_block,
    teeth_type_description,
    validate_teeth_format,
)
from kreative_clinic.domain.catalog.service import discount_percent
from kreative_clinic.models import Service, ServiceDiscount
from kreative_clinic.shared.timeutils import clinic_now, clinic_today, weekday_index


class TestPricingHelpers:
    """Durations, teeth notation and promo percentages"""

    @pytest.mark.parametrize("minutes,expected", [(None, 30), (0, 30), (20, 30), (30, 30), (45, 60), (90, 90)])
    def test_round_up_to_block(self, minutes, expected):
        assert round_up_to_block(minutes) == expected

    def test_per_tooth_duration(self):
        service = Service(estimated_minutes=30, per_teeth_service=True, per_tooth_minutes=20)

        assert calculate_estimated_minutes(service) == 20
        assert calculate_estimated_minutes(service, 1) == 30
        assert calculate_estimated_minutes(service, 4) == 90

    def test_regular_service_ignores_teeth(self):
        service = Service(estimated_minutes=60, per_teeth_service=False)

        assert calculate_estimated_minutes(service, 5) == 60

    def test_per_tooth_price(self):
        service = Service(price=800, per_teeth_service=True)

        assert calculate_total_price(service, 800, "14, 15,16") == 2400
        assert calculate_total_price(service, 800, None) == 800

    def test_teeth_validation(self):
        assert validate_teeth_format("1,2,32") == []
        assert validate_teeth_format("A,T") == []
        assert len(validate_teeth_format("33")) == 1
        assert validate_teeth_format("1,A") == [
            "Cannot mix adult teeth (numbers 1-32) and primary teeth (letters A-T) in the same entry."
        ]

    def test_teeth_type_description(self):
        assert teeth_type_description("A,B") == "Primary Teeth"
        assert teeth_type_description("11") == "Adult Teeth"
        assert teeth_type_description("") == ""

    def test_discount_percent(self):
        assert discount_percent(1000, 750) == 25
        assert discount_percent(0, 100) == 100


class TestServiceCrud:
    """Admin service management"""

    def test_create_rounds_duration(self, client, admin_headers):
        response = client.post(
            "/api/services",
            json={"name": "Root Canal", "price": 8000, "estimated_minutes": 75},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["estimated_minutes"] == 90

    def test_follow_up_requires_parent(self, client, admin_headers):
        response = client.post(
            "/api/services",
            json={"name": "Adjustment", "price": 500, "estimated_minutes": 30, "is_follow_up": True},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert "follow_up_parent_service_id" in response.json()["errors"]

    def test_follow_up_cannot_reference_itself(self, client, admin_headers, cleaning_service):
        response = client.put(
            f"/api/services/{cleaning_service.id}",
            json={"is_follow_up": True, "follow_up_parent_service_id": cleaning_service.id},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["errors"]["follow_up_parent_service_id"] == [
            "A follow-up service must reference a different parent service."
        ]

    def test_special_window_order(self, client, admin_headers):
        today = clinic_today()
        response = client.post(
            "/api/services",
            json={
                "name": "Summer Whitening",
                "price": 5000,
                "estimated_minutes": 60,
                "is_special": True,
                "special_start_date": (today + timedelta(days=5)).isoformat(),
                "special_end_date": today.isoformat(),
            },
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert "special_end_date" in response.json()["errors"]

    def test_patient_cannot_create(self, client, patient_headers):
        response = client.post(
            "/api/services", json={"name": "X", "price": 1, "estimated_minutes": 30}, headers=patient_headers
        )

        assert response.status_code == 403


class TestPromos:
    """Planned -> launched -> canceled lifecycle"""

    def _create(self, client, headers, service, day, price=750):
        return client.post(
            f"/api/services/{service.id}/discounts",
            json={"start_date": day.isoformat(), "end_date": day.isoformat(), "discounted_price": price},
            headers=headers,
        )

    def test_create_launch_cancel(self, client, admin_headers, cleaning_service, next_open_day):
        created = self._create(client, admin_headers, cleaning_service, next_open_day)
        assert created.status_code == 201
        assert created.json()["status"] == "planned"

        launched = client.post(f"/api/discounts/{created.json()['id']}/launch", headers=admin_headers)
        assert launched.status_code == 200
        assert launched.json()["status"] == "launched"
        assert launched.json()["activated_at"] is not None

        edit = client.put(
            f"/api/discounts/{created.json()['id']}", json={"discounted_price": 700}, headers=admin_headers
        )
        assert edit.status_code == 422

        canceled = client.post(f"/api/discounts/{created.json()['id']}/cancel", headers=admin_headers)
        assert canceled.json()["status"] == "canceled"

        again = client.post(f"/api/discounts/{created.json()['id']}/cancel", headers=admin_headers)
        assert again.status_code == 422

    def test_price_must_be_lower(self, client, admin_headers, cleaning_service, next_open_day):
        response = self._create(client, admin_headers, cleaning_service, next_open_day, price=1000)

        assert response.status_code == 422
        assert "discounted_price" in response.json()["errors"]

    def test_dates_must_be_open_days(self, client, admin_headers, cleaning_service):
        sunday = clinic_today() + timedelta(days=1)
        while weekday_index(sunday) != 0:
            sunday += timedelta(days=1)

        response = self._create(client, admin_headers, cleaning_service, sunday)

        assert response.status_code == 422
        assert response.json()["errors"]["start_date"] == [f"{sunday.isoformat()} falls on a clinic closed day."]

    def test_overlapping_promos_rejected(self, client, admin_headers, cleaning_service, next_open_day):
        self._create(client, admin_headers, cleaning_service, next_open_day)

        response = self._create(client, admin_headers, cleaning_service, next_open_day, price=600)

        assert response.status_code == 422
        assert "overlaps" in response.json()["message"]

    def test_discount_applies_one_day_after_launch(self, db, cleaning_service, next_open_day):
        promo = ServiceDiscount(
            service_id=cleaning_service.id,
            start_date=next_open_day,
            end_date=next_open_day,
            discounted_price=750,
            status="launched",
            activated_at=clinic_now(),
        )
        db.add(promo)
        db.commit()

        assert active_discount(db, cleaning_service, next_open_day) is None
        assert get_price_for_date(db, cleaning_service, next_open_day) == 1000

        promo.activated_at = clinic_now() - timedelta(days=2)
        db.commit()

        assert active_discount(db, cleaning_service, next_open_day).id == promo.id
        assert get_price_for_date(db, cleaning_service, next_open_day) == 750


class TestAvailableServices:
    """Bookable services for a date"""

    def test_closed_date_returns_message(self, client, patient_headers, cleaning_service):
        sunday = clinic_today() + timedelta(days=1)
        while weekday_index(sunday) != 0:
            sunday += timedelta(days=1)

        response = client.get(f"/api/appointment/available-services?date={sunday.isoformat()}", headers=patient_headers)

        assert response.json() == {"message": "Clinic is closed on the selected date.", "services": []}

    def test_launched_promo_replaces_regular_entry(self, client, patient_headers, db, cleaning_service, next_open_day):
        db.add(
            ServiceDiscount(
                service_id=cleaning_service.id,
                start_date=next_open_day,
                end_date=next_open_day,
                discounted_price=800,
                status="launched",
                activated_at=clinic_now() - timedelta(days=2),
            )
        )
        db.commit()

        services = client.get(
            f"/api/appointment/available-services?date={next_open_day.isoformat()}", headers=patient_headers
        ).json()

        assert len(services) == 1
        assert services[0]["type"] == "promo"
        assert services[0]["promo_price"] == 800
        assert services[0]["discount_percent"] == 20

    def test_follow_up_hidden_without_parent_visit(
        self, client, patient_headers, db, patient, cleaning_service, next_open_day, make_visit
    ):
        follow_up = Service(
            name="Post-cleaning Check",
            price=300,
            estimated_minutes=30,
            is_follow_up=True,
            follow_up_parent_service_id=cleaning_service.id,
            follow_up_max_gap_weeks=4,
        )
        db.add(follow_up)
        db.commit()
        url = f"/api/appointment/available-services?date={next_open_day.isoformat()}"

        names = [s["name"] for s in client.get(url, headers=patient_headers).json()]
        assert "Post-cleaning Check" not in names

        make_visit(patient, cleaning_service, day=clinic_today() - timedelta(days=7))

        names = [s["name"] for s in client.get(url, headers=patient_headers).json()]
        assert "Post-cleaning Check" in names
