from datetime import date, datetime, timedelta

import pytest

from kreative_clinic.domain.reports.metrics import kpi, month_bounds, parse_month, previous_month, safe_pct
from kreative_clinic.models_inventory import InventoryBatch, InventoryItem, InventoryMovement
from kreative_clinic.shared.timeutils import clinic_today, weekday_index


@pytest.fixture
def march_visits(db, patient, cleaning_service, make_visit, make_appointment, make_payment):
    """One appointment-backed visit and one walk-in in March 2024, one paid in cash"""
    day = date(2024, 3, 5)
    make_appointment(patient, cleaning_service, day=day, status="completed")
    booked = make_visit(
        patient,
        cleaning_service,
        day=day,
        start_time=datetime(2024, 3, 5, 9, 0),
        end_time=datetime(2024, 3, 5, 9, 45),
    )
    walkin = make_visit(
        patient,
        day=date(2024, 3, 6),
        start_time=datetime(2024, 3, 6, 14, 0),
        end_time=datetime(2024, 3, 6, 14, 45),
    )
    make_payment(amount=1000, method="cash", patient_visit_id=booked.id, paid_at=datetime(2024, 3, 5, 10, 0))
    return booked, walkin


class TestMetrics:
    def test_safe_pct(self):
        assert safe_pct(15, 10) == 50.0
        assert safe_pct(5, 0) == 100.0
        assert safe_pct(0, 0) == 0.0

    def test_kpi_rounding(self):
        assert kpi(12.346, 10, digits=2) == {"value": 12.35, "prev": 10, "pct_change": 23.46}

    def test_months(self):
        assert parse_month("2024-02") == date(2024, 2, 1)
        assert parse_month("garbage") == clinic_today().replace(day=1)
        start, end = month_bounds(date(2024, 2, 1))
        assert start == datetime(2024, 2, 1)
        assert end.date() == date(2024, 2, 29)
        assert previous_month(date(2024, 1, 1)) == date(2023, 12, 1)


class TestVisitReports:
    def test_monthly(self, client, admin_headers, march_visits):
        report = client.get("/api/reports/visits-monthly?month=2024-03", headers=admin_headers).json()

        assert report["month"] == "2024-03"
        assert report["totals"] == {"visits": 2, "inquiries": 0}
        assert report["by_day"] == [{"day": "2024-03-05", "count": 1}, {"day": "2024-03-06", "count": 1}]
        assert report["by_visit_type"] == [
            {"visit_type": "appointment", "count": 1},
            {"visit_type": "walkin", "count": 1},
        ]
        names = {row["service_name"] for row in report["by_service"]}
        assert names == {"Oral Prophylaxis", "(Unspecified)"}

    def test_daily(self, client, admin_headers, march_visits):
        report = client.get("/api/reports/visits-daily?date=2024-03-05", headers=admin_headers).json()

        assert report["by_hour"] == [{"hour": 9, "count": 1}]
        assert report["by_service"][0]["appointment"] == 1
        assert report["by_service"][0]["walkin"] == 0

    def test_admin_only(self, client, staff_headers):
        response = client.get("/api/reports/visits-monthly", headers=staff_headers)

        assert response.status_code == 403


class TestAnalyticsSummary:
    def test_kpis_against_empty_previous_month(self, client, admin_headers, march_visits):
        summary = client.get("/api/analytics/summary?period=2024-03", headers=admin_headers).json()

        assert summary["previous_month"] == "2024-02"
        assert summary["has_last_month_data"] is False
        kpis = summary["kpis"]
        assert kpis["total_visits"] == {"value": 2, "prev": 0, "pct_change": 100.0}
        assert kpis["avg_visit_duration_min"]["value"] == 45.0
        assert kpis["total_revenue"]["value"] == 1000
        assert kpis["payment_method_share"]["cash"]["share_pct"] == 100.0
        assert summary["top_revenue_services"][0]["service_name"] == "Oral Prophylaxis"

        messages = [alert["message"] for alert in summary["alerts"]]
        assert any(m.startswith("Strong growth in visits: +100.0%") for m in messages)

    def test_closures_flag_silent_open_days(self, client, admin_headers, march_visits):
        closures = client.get("/api/analytics/summary?month=2024-03", headers=admin_headers).json()[
            "clinic_closure_info"
        ]

        # March 2024 has 26 days that are open by default (Mon-Sat); two had visits
        assert closures["total_expected_open_days"] == 26
        assert closures["total_actual_open_days"] == 2
        assert closures["closure_count"] == 24
        assert closures["has_significant_closures"] is True


class TestComparisonAndTrend:
    @pytest.fixture
    def february_loss(self, db):
        """Two expired units at 50 each, plus a damaged one that is not a loss"""
        item = InventoryItem(name="Prophy Paste", sku_code="PP-1")
        db.add(item)
        db.flush()
        batch = InventoryBatch(
            item_id=item.id, qty_received=10, qty_on_hand=7, cost_per_unit=50, received_at=datetime(2024, 1, 5)
        )
        db.add(batch)
        db.flush()
        for reason, quantity in (("expired", 2), ("damaged", 1)):
            db.add(
                InventoryMovement(
                    item_id=item.id,
                    batch_id=batch.id,
                    type="adjust",
                    quantity=quantity,
                    adjust_reason=reason,
                    created_at=datetime(2024, 2, 15, 10, 0),
                )
            )
        db.commit()

    def test_comparison(self, client, admin_headers, march_visits):
        report = client.get("/api/analytics/comparison?period=2024-03", headers=admin_headers).json()

        assert report["month"] == "2024-03"
        metrics = {m["label"]: (m["this_month"], m["last_month"]) for m in report["metrics"]}
        assert metrics == {
            "Total Visits": (2, 0),
            "Approved Appointments": (0, 0),
            "No-Shows": (0, 0),
            "Avg Visit Duration": (45.0, 0.0),
            "Total Revenue": (1000.0, 0.0),
        }

    def test_custom_range_by_month(
        self, client, admin_headers, march_visits, february_loss, patient, cleaning_service, make_appointment
    ):
        make_appointment(patient, cleaning_service, day=date(2024, 2, 10), reference_code="FEBR2345")

        trend = client.get(
            "/api/analytics/trend?start_date=2024-01-01&end_date=2024-03-31", headers=admin_headers
        ).json()

        assert trend["granularity"] == "month"
        assert trend["labels"] == ["Jan 2024", "Feb 2024", "Mar 2024"]
        assert trend["visits"] == [0, 0, 2]
        assert trend["appointments"] == [0, 1, 0]
        assert trend["revenue"] == [0, 0, 1000]
        assert trend["loss"] == [0, 100, 0]

    def test_long_range_switches_to_years(self, client, admin_headers, march_visits):
        trend = client.get(
            "/api/analytics/trend?start_date=2023-01-01&end_date=2024-03-31", headers=admin_headers
        ).json()

        assert trend["granularity"] == "year"
        assert trend["labels"] == ["2023", "2024"]
        assert trend["visits"] == [0, 2]

    def test_yearly_flag_on_short_range(self, client, admin_headers, march_visits):
        trend = client.get(
            "/api/analytics/trend?start_date=2023-06-01&end_date=2024-03-31&yearly=true", headers=admin_headers
        ).json()

        assert trend["labels"] == ["2023", "2024"]

    def test_default_window_is_clamped(self, client, admin_headers):
        short = client.get("/api/analytics/trend?months=1", headers=admin_headers).json()
        long = client.get("/api/analytics/trend?months=100", headers=admin_headers).json()

        assert len(short["labels"]) == 3
        assert short["labels"][-1] == clinic_today().strftime("%b")
        assert len(long["labels"]) == 24

    def test_reversed_range(self, client, admin_headers):
        response = client.get(
            "/api/analytics/trend?start_date=2024-03-01&end_date=2024-02-01", headers=admin_headers
        )

        assert response.status_code == 422
        assert "end_date" in response.json()["errors"]

    def test_staff_forbidden(self, client, staff_headers):
        assert client.get("/api/analytics/trend", headers=staff_headers).status_code == 403


class TestTimeBlockUtilization:
    def _monday(self):
        day = clinic_today() + timedelta(days=1)
        while weekday_index(day) != 1:
            day += timedelta(days=1)
        return day

    def test_booked_blocks(self, client, admin_headers, patient, cleaning_service, dentist, make_appointment):
        monday = self._monday()
        make_appointment(patient, cleaning_service, day=monday, time_slot="09:00-10:00")

        grid = client.get(
            f"/api/admin/time-block-utilization?start_date={monday.isoformat()}&end_date={monday.isoformat()}",
            headers=admin_headers,
        ).json()

        slots = {slot["time"]: slot for slot in grid[0]["time_slots"]}
        assert grid[0]["capacity"] == 1
        assert slots["09:00"]["utilization_percentage"] == 100.0
        assert slots["09:30"]["booked"] == 1
        assert slots["10:00"]["booked"] == 0

    def test_range_limits(self, client, admin_headers):
        today = clinic_today()

        backwards = client.get(
            f"/api/admin/time-block-utilization?start_date={today.isoformat()}"
            f"&end_date={(today - timedelta(days=1)).isoformat()}",
            headers=admin_headers,
        )
        too_long = client.get(
            f"/api/admin/time-block-utilization?start_date={today.isoformat()}"
            f"&end_date={(today + timedelta(days=31)).isoformat()}",
            headers=admin_headers,
        )

        assert backwards.status_code == 422
        assert too_long.json()["errors"]["end_date"] == ["The date range cannot exceed 31 days."]

    def test_default_range_is_one_week(self, client, admin_headers):
        grid = client.get("/api/admin/time-block-utilization", headers=admin_headers).json()

        assert len(grid) == 7
