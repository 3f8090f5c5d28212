from datetime import timedelta

from kreative_clinic.domain.clinic_calendar.resolver import ClinicDateResolver
from kreative_clinic.models import ClinicCalendar
from kreative_clinic.shared.timeutils import clinic_today, weekday_index


def _next_weekday(index: int):
    day = clinic_today() + timedelta(days=1)
    while weekday_index(day) != index:
        day += timedelta(days=1)
    return day


class TestWeeklySchedule:
    """Weekly defaults and admin edits"""

    def test_default_week_is_created_lazily(self, client, staff_headers):
        response = client.get("/api/weekly-schedule", headers=staff_headers)

        assert response.status_code == 200
        rows = {row["weekday"]: row for row in response.json()}
        assert len(rows) == 7
        assert rows[0]["is_open"] is False
        assert rows[1]["open_time"] == "08:00"
        assert rows[1]["close_time"] == "17:00"
        assert rows[6]["close_time"] == "12:00"

    def test_admin_can_open_sunday(self, client, admin_headers):
        rows = client.get("/api/weekly-schedule", headers=admin_headers).json()
        sunday = next(row for row in rows if row["weekday"] == 0)

        response = client.patch(
            f"/api/weekly-schedule/{sunday['id']}",
            json={"is_open": True, "open_time": "09:00:00", "close_time": "13:00"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["is_open"] is True
        assert response.json()["open_time"] == "09:00"

    def test_close_must_be_after_open(self, client, admin_headers):
        rows = client.get("/api/weekly-schedule", headers=admin_headers).json()
        monday = next(row for row in rows if row["weekday"] == 1)

        response = client.patch(
            f"/api/weekly-schedule/{monday['id']}",
            json={"open_time": "17:00", "close_time": "08:00"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert "close_time" in response.json()["errors"]

    def test_staff_cannot_edit(self, client, staff_headers):
        rows = client.get("/api/weekly-schedule", headers=staff_headers).json()

        response = client.patch(f"/api/weekly-schedule/{rows[0]['id']}", json={"is_open": True}, headers=staff_headers)

        assert response.status_code == 403


class TestCalendarOverrides:
    """Date overrides take precedence over the weekly defaults"""

    def test_create_and_resolve_override(self, client, admin_headers):
        day = _next_weekday(1)
        response = client.post(
            "/api/clinic-calendar",
            json={"date": day.isoformat(), "is_open": False, "note": "Holiday"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["open_time"] is None

        resolved = client.get(f"/api/clinic-calendar/resolve?date={day.isoformat()}", headers=admin_headers).json()
        assert resolved["source"] == "override"
        assert resolved["data"]["is_open"] is False
        assert resolved["data"]["note"] == "Holiday"

    def test_duplicate_date_rejected(self, client, admin_headers):
        day = _next_weekday(2)
        payload = {"date": day.isoformat(), "is_open": True, "open_time": "10:00", "close_time": "15:00"}
        client.post("/api/clinic-calendar", json=payload, headers=admin_headers)

        response = client.post("/api/clinic-calendar", json=payload, headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["errors"]["date"] == ["The date has already been taken."]

    def test_open_override_requires_hours(self, client, admin_headers):
        response = client.post(
            "/api/clinic-calendar",
            json={"date": _next_weekday(3).isoformat(), "is_open": True},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert set(response.json()["errors"]) == {"open_time", "close_time"}

    def test_resolve_falls_back_to_weekly(self, client, staff_headers):
        day = _next_weekday(0)

        resolved = client.get(f"/api/clinic-calendar/resolve?date={day.isoformat()}", headers=staff_headers).json()

        assert resolved["source"] == "weekly"
        assert resolved["data"]["is_open"] is False

    def test_delete_override(self, client, admin_headers, db):
        day = _next_weekday(4)
        created = client.post(
            "/api/clinic-calendar", json={"date": day.isoformat(), "is_open": False}, headers=admin_headers
        ).json()

        response = client.delete(f"/api/clinic-calendar/{created['id']}", headers=admin_headers)

        assert response.status_code == 204
        assert db.query(ClinicCalendar).count() == 0


class TestClinicSchedule:
    """Resolved snapshot with capacity and blocks"""

    def test_capacity_is_active_dentist_count(self, client, staff_headers, dentist):
        day = _next_weekday(1)

        snapshot = client.get(f"/api/clinic-schedule?date={day.isoformat()}", headers=staff_headers).json()

        assert snapshot["is_open"] is True
        assert snapshot["dentist_count"] == 1
        assert snapshot["effective_capacity"] == 1
        assert snapshot["blocks"][0] == "08:00"
        assert snapshot["blocks"][-1] == "16:30"

    def test_max_per_block_caps_capacity(self, db, dentist):
        day = _next_weekday(2)
        db.add(ClinicCalendar(date=day, is_open=True, open_time="08:00", close_time="12:00", max_per_block=0))
        db.commit()

        snapshot = ClinicDateResolver(db).resolve(day)

        assert snapshot["source"] == "override"
        assert snapshot["capacity_override"] == 0
        assert snapshot["effective_capacity"] == 0

    def test_closed_day_has_no_blocks(self, client, staff_headers, dentist):
        day = _next_weekday(0)

        snapshot = client.get(f"/api/clinic-schedule?date={day.isoformat()}", headers=staff_headers).json()

        assert snapshot["is_open"] is False
        assert snapshot["effective_capacity"] == 0
        assert snapshot["blocks"] == []
