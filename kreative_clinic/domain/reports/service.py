"""
Reports service
Monthly and daily visit reports, the analytics summary and the time-block utilization grid
"""

import logging
from collections import Counter, defaultdict
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...models_visit import PatientVisit
from ...shared.errors import FieldValidationError
from ...shared.timeutils import (
    build_blocks,
    clinic_today,
    date_range,
    end_of_day,
    slot_blocks,
    start_of_day,
    weekday_index,
)
from ..appointments.repository import ACTIVE_STATUSES
from ..clinic_calendar.repository import ClinicCalendarRepository
from ..clinic_calendar.resolver import ClinicDateResolver
from .metrics import days_in_month, kpi, month_bounds, parse_month, previous_month, safe_pct, share_pct
from .repository import ReportRepository

logger = logging.getLogger(__name__)

UNSPECIFIED = "(Unspecified)"
PAYMENT_METHODS = ("cash", "hmo", "maya")
TOP_LIMIT = 5
MAX_UTILIZATION_DAYS = 31
SIGNIFICANT_CLOSURES = 5
TREND_DEFAULT_MONTHS = 6
TREND_MIN_MONTHS = 3
TREND_MAX_MONTHS = 24


def _visit_type(visit: PatientVisit, appointment_keys: set) -> str:
    key = (visit.patient_id, visit.service_id, visit.visit_date)
    return "appointment" if key in appointment_keys else "walkin"


def _duration_minutes(visit: PatientVisit) -> Optional[float]:
    if not visit.start_time or not visit.end_time:
        return None
    return (visit.end_time - visit.start_time).total_seconds() / 60.0


def _average(values: list) -> float:
    return sum(values) / len(values) if values else 0.0


class ReportService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = ReportRepository()

    def _service_name(self, names: dict, service_id: Optional[int]) -> str:
        return names.get(service_id) or UNSPECIFIED

    # ------------------------------------------------------------------
    # Visit reports
    # ------------------------------------------------------------------

    def visits_monthly(self, month: Optional[str]) -> dict:
        first_day = parse_month(month)
        start, end = month_bounds(first_day)
        visits = self.repo.visits_started_between(self.db, start, end)
        keys = self.repo.appointment_keys(self.db, start.date(), end.date())
        names = self.repo.service_names(self.db)
        days = days_in_month(first_day)

        by_day = Counter(v.start_time.date().isoformat() for v in visits)
        by_hour = Counter(v.start_time.hour for v in visits)
        by_type = Counter(_visit_type(v, keys) for v in visits)
        by_service = Counter(v.service_id for v in visits)

        logger.info(f"📊 Monthly visit report {first_day:%Y-%m}: {len(visits)} visits")
        return {
            "month": first_day.strftime("%Y-%m"),
            "totals": {
                "visits": len(visits),
                "inquiries": sum(1 for v in visits if v.status == "inquiry"),
            },
            "by_day": [{"day": day, "count": count} for day, count in sorted(by_day.items())],
            "by_hour": [{"hour": hour, "count": count} for hour, count in sorted(by_hour.items())],
            "by_hour_avg_per_day": [
                {"hour": hour, "avg_per_day": round(count / days, 2)} for hour, count in sorted(by_hour.items())
            ],
            "by_visit_type": [{"visit_type": t, "count": c} for t, c in sorted(by_type.items())],
            "by_service": [
                {"service_id": sid, "service_name": self._service_name(names, sid), "count": count}
                for sid, count in by_service.most_common()
            ],
        }

    def visits_daily(self, day: Optional[date]) -> dict:
        day = day or clinic_today()
        visits = self.repo.visits_started_between(self.db, start_of_day(day), end_of_day(day))
        keys = self.repo.appointment_keys(self.db, day, day)
        names = self.repo.service_names(self.db)

        by_hour = Counter(v.start_time.hour for v in visits)
        by_type = Counter(_visit_type(v, keys) for v in visits)
        services = defaultdict(lambda: {"count": 0, "walkin": 0, "appointment": 0})
        for visit in visits:
            row = services[visit.service_id]
            row["count"] += 1
            row[_visit_type(visit, keys)] += 1

        return {
            "date": day.isoformat(),
            "by_hour": [{"hour": hour, "count": count} for hour, count in sorted(by_hour.items())],
            "by_visit_type": [{"visit_type": t, "count": c} for t, c in sorted(by_type.items())],
            "by_service": sorted(
                (
                    {"service_id": sid, "service_name": self._service_name(names, sid), **row}
                    for sid, row in services.items()
                ),
                key=lambda r: r["count"],
                reverse=True,
            ),
        }

    # ------------------------------------------------------------------
    # Analytics summary
    # ------------------------------------------------------------------

    def _follow_up_rate(self, first_day: date) -> tuple[float, int, int]:
        """Share of patients first seen 3-4 months earlier who came back 3-4 months after"""
        window_start = start_of_day(first_day - relativedelta(months=4))
        window_end = end_of_day(first_day - relativedelta(months=2) - timedelta(days=1))
        first_visits = self.repo.first_visits_between(self.db, window_start, window_end)

        returned = 0
        for patient_id, first_visit in first_visits:
            if self.repo.has_visit_between(
                self.db, patient_id, first_visit + relativedelta(months=3), first_visit + relativedelta(months=4)
            ):
                returned += 1

        total = len(first_visits)
        rate = round(returned / total * 100.0, 2) if total else 0.0
        return rate, returned, total

    def _payment_shares(self, payments: list) -> dict:
        counts = Counter(p.method for p in payments if p.method in PAYMENT_METHODS)
        total = sum(counts.values())
        return {method: (counts.get(method, 0), share_pct(counts.get(method, 0), total)) for method in PAYMENT_METHODS}

    def _clinic_closures(self, start: date, end: date) -> dict:
        """Weekdays that should have been open but recorded no visits and had no closing override"""
        weekly = {row.weekday: row for row in ClinicCalendarRepository.ensure_weekly_rows(self.db)}
        closing_overrides = self.repo.closing_overrides(self.db, start, end)

        expected = actual = 0
        closed_days = []
        for day in date_range(start, end):
            row = weekly.get(weekday_index(day))
            if not row or not row.is_open:
                continue
            expected += 1
            if self.repo.has_visit_on(self.db, day):
                actual += 1
            elif day not in closing_overrides:
                closed_days.append(
                    {
                        "date": day.isoformat(),
                        "day_name": day.strftime("%A"),
                        "reason": "No visits recorded despite being scheduled to be open",
                    }
                )

        count = len(closed_days)
        if count >= SIGNIFICANT_CLOSURES:
            summary = (
                f"Clinic was closed for {count} days when it should have been open based on weekly schedule. "
                "This may indicate operational issues or unexpected closures."
            )
        elif count:
            summary = f"Clinic was closed for {count} day(s) when it should have been open. Monitor for patterns."
        else:
            summary = "All scheduled operating days had activity recorded."

        return {
            "total_expected_open_days": expected,
            "total_actual_open_days": actual,
            "unexpected_closures": closed_days,
            "closure_count": count,
            "closure_rate_percentage": round(count / expected * 100, 2) if expected else 0,
            "has_significant_closures": count >= SIGNIFICANT_CLOSURES,
            "summary": summary,
        }

    def analytics_summary(self, period: Optional[str]) -> dict:
        first_day = parse_month(period)
        prev_first = previous_month(first_day)
        start, end = month_bounds(first_day)
        prev_start, prev_end = month_bounds(prev_first)

        visits = self.repo.visits_started_between(self.db, start, end)
        prev_visits = self.repo.visits_started_between(self.db, prev_start, prev_end)
        visits_curr, visits_prev = len(visits), len(prev_visits)

        approved_curr = self.repo.count_appointments(self.db, "approved", start.date(), end.date())
        approved_prev = self.repo.count_appointments(self.db, "approved", prev_start.date(), prev_end.date())
        no_show_curr = self.repo.count_appointments(self.db, "no_show", start.date(), end.date())
        no_show_prev = self.repo.count_appointments(self.db, "no_show", prev_start.date(), prev_end.date())

        dur_curr = _average([d for d in map(_duration_minutes, visits) if d is not None])
        dur_prev = _average([d for d in map(_duration_minutes, prev_visits) if d is not None])

        names = self.repo.service_names(self.db)
        excluded = self.repo.excluded_service_ids(self.db)

        counts_curr = Counter(v.service_id for v in visits if v.service_id not in excluded)
        counts_prev = Counter(v.service_id for v in prev_visits)
        top_services = [
            {
                "service_id": sid,
                "service_name": self._service_name(names, sid),
                "count": count,
                "prev_count": counts_prev.get(sid, 0),
                "pct_change": safe_pct(count, counts_prev.get(sid, 0)),
            }
            for sid, count in counts_curr.most_common(TOP_LIMIT)
        ]

        payments = self.repo.paid_payments_between(self.db, start, end)
        prev_payments = self.repo.paid_payments_between(self.db, prev_start, prev_end)
        revenue_curr = round(sum(p.amount_paid or 0 for p in payments), 2)
        revenue_prev = round(sum(p.amount_paid or 0 for p in prev_payments), 2)

        def revenue_by_service(rows, skip_excluded):
            totals = defaultdict(float)
            for payment in rows:
                if not payment.visit:
                    continue
                sid = payment.visit.service_id
                if skip_excluded and sid in excluded:
                    continue
                totals[sid] += payment.amount_paid or 0
            return totals

        revenue_services_curr = revenue_by_service(payments, True)
        revenue_services_prev = revenue_by_service(prev_payments, False)
        top_revenue_services = [
            {
                "service_id": sid,
                "service_name": self._service_name(names, sid),
                "revenue": round(revenue, 2),
                "prev_revenue": round(revenue_services_prev.get(sid, 0.0), 2),
                "pct_change": safe_pct(revenue, revenue_services_prev.get(sid, 0.0)),
            }
            for sid, revenue in sorted(revenue_services_curr.items(), key=lambda item: item[1], reverse=True)[:TOP_LIMIT]
        ]

        shares_curr = self._payment_shares(payments)
        shares_prev = self._payment_shares(prev_payments)
        payment_method_share = {
            method: {
                "count": shares_curr[method][0],
                "share_pct": shares_curr[method][1],
                "prev_share_pct": shares_prev[method][1],
                "pct_point_change": round(shares_curr[method][1] - shares_prev[method][1], 2),
            }
            for method in PAYMENT_METHODS
        }

        follow_up_curr, returned, first_timers = self._follow_up_rate(first_day)
        follow_up_prev, _, _ = self._follow_up_rate(prev_first)

        by_day = Counter(v.start_time.date().isoformat() for v in visits)

        alerts = self._alerts(
            visits_curr=visits_curr,
            visits_prev=visits_prev,
            approved=approved_curr,
            no_shows=no_show_curr,
            avg_duration=dur_curr,
            top_services=top_services,
            follow_up_rate=follow_up_curr,
            returned=returned,
            first_timers=first_timers,
            hmo_change=payment_method_share["hmo"]["pct_point_change"],
        )

        logger.info(f"📊 Analytics summary {first_day:%Y-%m}: {visits_curr} visits, {len(alerts)} alerts")
        return {
            "month": first_day.strftime("%Y-%m"),
            "previous_month": prev_first.strftime("%Y-%m"),
            "has_last_month_data": visits_prev > 0 or approved_prev > 0 or revenue_prev > 0,
            "clinic_closure_info": self._clinic_closures(start.date(), end.date()),
            "kpis": {
                "total_visits": kpi(visits_curr, visits_prev),
                "approved_appointments": kpi(approved_curr, approved_prev),
                "no_shows": kpi(no_show_curr, no_show_prev),
                "avg_visit_duration_min": kpi(dur_curr, dur_prev, digits=2),
                "patient_follow_up_rate": {
                    **kpi(follow_up_curr, follow_up_prev),
                    "total_first_time_patients": first_timers,
                    "returned_patients": returned,
                },
                "total_revenue": kpi(revenue_curr, revenue_prev, digits=2),
                "payment_method_share": payment_method_share,
            },
            "top_services": top_services,
            "top_revenue_services": top_revenue_services,
            "series": {"visits_by_day": [{"day": d, "count": c} for d, c in sorted(by_day.items())]},
            "alerts": alerts,
        }

    def _alerts(
        self,
        visits_curr: int,
        visits_prev: int,
        approved: int,
        no_shows: int,
        avg_duration: float,
        top_services: list,
        follow_up_rate: float,
        returned: int,
        first_timers: int,
        hmo_change: float,
    ) -> list[dict]:
        alerts = []

        if approved > 0:
            no_show_rate = round(no_shows / approved * 100.0, 2)
            if no_show_rate >= 20.0:
                alerts.append(
                    {
                        "type": "warning",
                        "message": f"High no-show rate: {no_show_rate}% of approved appointments. "
                        "Consider implementing reminder systems or appointment confirmation calls.",
                    }
                )

        if avg_duration >= 100:
            alerts.append(
                {
                    "type": "info",
                    "message": "Average visit duration is unusually long (>= 100 minutes). "
                    "This may indicate complex procedures or potential scheduling inefficiencies.",
                }
            )
        elif 0 < avg_duration <= 25:
            alerts.append(
                {
                    "type": "info",
                    "message": "Average visit duration is quite short (<= 25 minutes). "
                    "Consider if consultations are thorough enough.",
                }
            )

        if top_services and visits_curr > 0 and top_services[0]["count"] / visits_curr >= 0.5:
            alerts.append(
                {
                    "type": "info",
                    "message": "One service accounts for over 50% of visits. "
                    "Consider balancing workload or promoting underutilized services.",
                }
            )

        if first_timers > 0:
            ratio = f"{follow_up_rate}% ({returned}/{first_timers} patients)"
            if follow_up_rate < 20:
                alerts.append(
                    {
                        "type": "warning",
                        "message": f"Low patient follow-up rate: {ratio}. "
                        "Consider follow-up calls or appointment reminders.",
                    }
                )
            elif follow_up_rate >= 50:
                alerts.append({"type": "info", "message": f"Excellent patient follow-up rate: {ratio}."})
            elif follow_up_rate >= 30:
                alerts.append({"type": "info", "message": f"Good patient follow-up rate: {ratio}."})

        if hmo_change >= 15.0:
            alerts.append(
                {
                    "type": "info",
                    "message": f"HMO share increased sharply vs last month (+{round(hmo_change, 1)} pp). "
                    "Monitor insurer approval times.",
                }
            )

        if visits_curr > 0:
            change = safe_pct(visits_curr, visits_prev)
            if change <= -20:
                alerts.append(
                    {"type": "warning", "message": f"Significant drop in visits: {change}% vs last month."}
                )
            elif change >= 30:
                alerts.append(
                    {
                        "type": "info",
                        "message": f"Strong growth in visits: +{change}% vs last month. "
                        "Consider capacity planning and staff scheduling adjustments.",
                    }
                )

        return alerts

    # ------------------------------------------------------------------
    # Month comparison and trend
    # ------------------------------------------------------------------

    def _month_snapshot(self, first_day: date) -> dict:
        start, end = month_bounds(first_day)
        visits = self.repo.visits_started_between(self.db, start, end)
        durations = [d for d in map(_duration_minutes, visits) if d is not None]
        return {
            "Total Visits": len(visits),
            "Approved Appointments": self.repo.count_appointments(self.db, "approved", start.date(), end.date()),
            "No-Shows": self.repo.count_appointments(self.db, "no_show", start.date(), end.date()),
            "Avg Visit Duration": round(_average(durations), 1),
            "Total Revenue": round(self.repo.revenue_between(self.db, start, end), 2),
        }

    def analytics_comparison(self, period: Optional[str]) -> dict:
        first_day = parse_month(period)
        prev_first = previous_month(first_day)
        current = self._month_snapshot(first_day)
        previous = self._month_snapshot(prev_first)

        return {
            "month": first_day.strftime("%Y-%m"),
            "previous_month": prev_first.strftime("%Y-%m"),
            "metrics": [
                {"label": label, "this_month": value, "last_month": previous[label]}
                for label, value in current.items()
            ],
        }

    def _trend_buckets(
        self, months: int, yearly: bool, start_date: Optional[date], end_date: Optional[date]
    ) -> tuple[str, list[tuple[str, date, date]]]:
        """(granularity, [(label, first day, last day)]) oldest first"""
        today = clinic_today()

        if start_date or end_date:
            end_date = end_date or today
            start_date = start_date or (end_date - relativedelta(months=months - 1)).replace(day=1)
            if end_date < start_date:
                raise FieldValidationError.single("end_date", "The end date must be on or after the start date.")

            # Custom ranges of a year or more switch to yearly buckets
            if yearly or end_date >= start_date + relativedelta(years=1):
                return "year", [
                    (str(year), max(date(year, 1, 1), start_date), min(date(year, 12, 31), end_date))
                    for year in range(start_date.year, end_date.year + 1)
                ]

            buckets = []
            cursor = start_date.replace(day=1)
            while cursor <= end_date:
                last = cursor + relativedelta(months=1) - timedelta(days=1)
                buckets.append((cursor.strftime("%b %Y"), max(cursor, start_date), min(last, end_date)))
                cursor += relativedelta(months=1)
            return "month", buckets

        if yearly:
            return "year", [
                (str(year), date(year, 1, 1), date(year, 12, 31))
                for year in range(today.year - months + 1, today.year + 1)
            ]

        first = today.replace(day=1) - relativedelta(months=months - 1)
        buckets = []
        for offset in range(months):
            month_start = first + relativedelta(months=offset)
            month_end = month_start + relativedelta(months=1) - timedelta(days=1)
            buckets.append((month_start.strftime("%b"), month_start, month_end))
        return "month", buckets

    def analytics_trend(
        self,
        months: Optional[int] = TREND_DEFAULT_MONTHS,
        yearly: bool = False,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        months = max(TREND_MIN_MONTHS, min(TREND_MAX_MONTHS, months or TREND_DEFAULT_MONTHS))
        granularity, buckets = self._trend_buckets(months, yearly, start_date, end_date)

        trend = {"granularity": granularity, "labels": [], "visits": [], "appointments": [], "revenue": [], "loss": []}
        for label, first_day, last_day in buckets:
            start, end = start_of_day(first_day), end_of_day(last_day)
            trend["labels"].append(label)
            trend["visits"].append(self.repo.count_visits_between(self.db, start, end))
            trend["appointments"].append(self.repo.count_appointments(self.db, "approved", first_day, last_day))
            trend["revenue"].append(round(self.repo.revenue_between(self.db, start, end), 2))
            trend["loss"].append(round(self.repo.loss_cost_between(self.db, start, end), 2))

        logger.info(f"📈 Analytics trend: {len(buckets)} {granularity} bucket(s)")
        return trend

    # ------------------------------------------------------------------
    # Time-block utilization
    # ------------------------------------------------------------------

    def time_block_utilization(self, start_date: Optional[date], end_date: Optional[date]) -> list[dict]:
        start_date = start_date or clinic_today()
        end_date = end_date or start_date + timedelta(days=6)

        if end_date < start_date:
            raise FieldValidationError.single("end_date", "The end date must be on or after the start date.")
        if (end_date - start_date).days + 1 > MAX_UTILIZATION_DAYS:
            raise FieldValidationError.single(
                "end_date", f"The date range cannot exceed {MAX_UTILIZATION_DAYS} days."
            )

        resolver = ClinicDateResolver(self.db)
        booked = defaultdict(Counter)
        for appointment in self.repo.active_appointments_between(self.db, start_date, end_date, ACTIVE_STATUSES):
            for block in slot_blocks(appointment.time_slot):
                booked[appointment.date][block] += 1

        grid = []
        for day in date_range(start_date, end_date):
            snap = resolver.resolve(day)
            capacity = snap["effective_capacity"]
            blocks = build_blocks(snap["open_time"], snap["close_time"]) if snap["is_open"] else []
            grid.append(
                {
                    "date": day.isoformat(),
                    "is_open": snap["is_open"],
                    "capacity": capacity,
                    "time_slots": [
                        {
                            "time": block,
                            "booked": booked[day][block],
                            "capacity": capacity,
                            "utilization_percentage": round(booked[day][block] / capacity * 100, 2) if capacity else 0,
                        }
                        for block in blocks
                    ],
                }
            )
        return grid
