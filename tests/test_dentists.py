from datetime import date, timedelta

from conftest import auth_headers, make_user

from kreative_clinic.domain.dentists.hours import active_on_date, is_time_slot_within_hours
from kreative_clinic.models import DentistSchedule
from kreative_clinic.shared.timeutils import clinic_today


def dentist_payload(**overrides) -> dict:
    payload = {
        "dentist_code": "DR-100",
        "dentist_name": "Dr. Ana Santos",
        "employment_type": "full_time",
        "status": "active",
        "email": "ana.santos@example.com",
        "mon": True,
        "wed": True,
        "wed_start_time": "09:00",
        "wed_end_time": "15:00",
    }
    payload.update(overrides)
    return payload


class TestDentistCrud:
    """Roster management by admins"""

    def test_create_dentist(self, client, admin_headers):
        response = client.post("/api/dentists", json=dentist_payload(), headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["dentist_code"] == "DR-100"
        assert data["mon"] is True
        assert data["tue"] is False
        assert data["wed_start_time"] == "09:00"
        assert data["mon_start_time"] is None

    def test_duplicate_code_and_email(self, client, admin_headers, dentist):
        response = client.post(
            "/api/dentists",
            json=dentist_payload(dentist_code=dentist.dentist_code, email=dentist.email),
            headers=admin_headers,
        )

        assert response.status_code == 422
        errors = response.json()["errors"]
        assert "dentist_code" in errors
        assert "email" in errors

    def test_requires_a_working_day(self, client, admin_headers):
        payload = dentist_payload(mon=False, wed=False)

        response = client.post("/api/dentists", json=payload, headers=admin_headers)

        assert response.status_code == 422
        assert "weekdays" in response.json()["errors"]

    def test_cannot_work_on_closed_clinic_day(self, client, admin_headers):
        payload = dentist_payload(sun=True, sun_start_time="09:00", sun_end_time="12:00")

        response = client.post("/api/dentists", json=payload, headers=admin_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["message"] == "Validation failed for dentist schedule hours."
        assert "sun" in body["errors"]

    def test_custom_hours_must_fit_clinic_hours(self, client, admin_headers):
        payload = dentist_payload(wed_start_time="07:00", wed_end_time="18:00")

        response = client.post("/api/dentists", json=payload, headers=admin_headers)

        assert response.status_code == 422
        errors = response.json()["errors"]
        assert "wed_start_time" in errors
        assert "wed_end_time" in errors

    def test_half_specified_hours_rejected(self, client, admin_headers):
        payload = dentist_payload(wed_end_time=None)

        response = client.post("/api/dentists", json=payload, headers=admin_headers)

        assert response.status_code == 422
        assert "wed_times" in response.json()["errors"]

    def test_unselected_day_loses_its_hours(self, client, admin_headers):
        payload = dentist_payload(tue_start_time="09:00", tue_end_time="10:00")

        response = client.post("/api/dentists", json=payload, headers=admin_headers)

        assert response.status_code == 201
        assert response.json()["tue_start_time"] is None

    def test_delete_dentist(self, client, admin_headers, dentist, db):
        response = client.delete(f"/api/dentists/{dentist.id}", headers=admin_headers)

        assert response.status_code == 204
        assert db.query(DentistSchedule).count() == 0

    def test_staff_cannot_create(self, client, staff_headers):
        response = client.post("/api/dentists", json=dentist_payload(), headers=staff_headers)

        assert response.status_code == 403


class TestDentistAvailability:
    """Active-on-date and custom-hours rules"""

    def test_available_for_date(self, client, staff_headers, dentist):
        day = clinic_today() + timedelta(days=1)

        response = client.get(f"/api/dentists/available-for-date?date={day.isoformat()}", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["dentists"][0]["dentist_code"] == "DR-001"

    def test_inactive_or_ended_contract_is_not_active(self, dentist):
        day = date(2030, 1, 7)
        assert active_on_date(dentist, day) is True

        dentist.contract_end_date = date(2030, 1, 6)
        assert active_on_date(dentist, day) is False

        dentist.contract_end_date = None
        dentist.status = "inactive"
        assert active_on_date(dentist, day) is False

    def test_slot_must_be_inside_custom_hours(self):
        dentist = DentistSchedule(mon=True, mon_start_time="09:00", mon_end_time="12:00", tue=False)

        assert is_time_slot_within_hours(dentist, 1, "09:00", "10:00") is True
        assert is_time_slot_within_hours(dentist, 1, "11:30", "12:30") is False
        assert is_time_slot_within_hours(dentist, 2, "09:00", "10:00") is False

    def test_my_schedule_matches_login_email(self, client, db, dentist):
        user = make_user(db, "dentist", dentist.email, "Dr. Maria Reyes")

        response = client.get("/api/dentist/my-schedule", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["id"] == dentist.id
