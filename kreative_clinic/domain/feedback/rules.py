"""
Patient feedback rules
Rating window, edit window, eligibility and scoring
"""

from datetime import datetime, timedelta
from typing import Optional

from ...config import FEEDBACK_EDIT_WINDOW_HOURS, FEEDBACK_RATING_WINDOW_DAYS
from ...models_visit import PatientFeedback, PatientVisit
from ...shared.timeutils import clinic_now, end_of_day

QUESTIONS = {
    "scheduling_convenience": "I felt the appointment scheduling process was convenient.",
    "staff_communication": "The clinic staff communicated clearly before and after my visit.",
    "wait_time_reasonable": "My wait time was reasonable.",
    "comfort_and_care": "I felt comfortable and cared for throughout my visit.",
    "treatment_clarity": "I understand the next steps in my treatment plan.",
    "return_likelihood": "I am likely to return to this clinic for future dental needs.",
    "recommendation_likelihood": "I would recommend this clinic to friends or family.",
}

ELIGIBILITY_MESSAGES = {
    "visit_not_completed": "Only completed visits can be rated.",
    "feedback_exists": "This visit already has feedback.",
    "window_elapsed": "The rating window has expired for this visit.",
}


def rating_window_deadline(visit: PatientVisit) -> Optional[datetime]:
    if FEEDBACK_RATING_WINDOW_DAYS <= 0:
        return None

    if visit.end_time:
        base = visit.end_time
    elif visit.start_time:
        base = visit.start_time
    elif visit.visit_date:
        base = end_of_day(visit.visit_date)
    else:
        return None
    return base + timedelta(days=FEEDBACK_RATING_WINDOW_DAYS)


def visit_eligibility(visit: PatientVisit, has_feedback: bool, now: Optional[datetime] = None) -> dict:
    """{can_rate, reason, deadline}; reason is None when the visit can be rated"""
    if visit.status != "completed":
        return {"can_rate": False, "reason": "visit_not_completed", "deadline": None}

    deadline = rating_window_deadline(visit)
    if has_feedback:
        return {"can_rate": False, "reason": "feedback_exists", "deadline": deadline}

    if deadline and (now or clinic_now()) > deadline:
        return {"can_rate": False, "reason": "window_elapsed", "deadline": deadline}

    return {"can_rate": True, "reason": None, "deadline": deadline}


def eligibility_message(reason: Optional[str]) -> str:
    return ELIGIBILITY_MESSAGES.get(reason, "This visit is not eligible for rating.")


def feedback_editable(feedback: PatientFeedback, now: Optional[datetime] = None) -> bool:
    if feedback.locked_at is not None:
        return False

    now = now or clinic_now()
    if feedback.editable_until is not None:
        return now < feedback.editable_until

    if FEEDBACK_EDIT_WINDOW_HOURS <= 0 or feedback.submitted_at is None:
        return False
    return now < feedback.submitted_at + timedelta(hours=FEEDBACK_EDIT_WINDOW_HOURS)


def average_score(answers: dict) -> Optional[float]:
    values = [v for v in (answers or {}).values() if isinstance(v, (int, float))]
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def sentiment(rating: Optional[int]) -> str:
    if rating is None:
        return "neutral"
    if rating >= 4:
        return "positive"
    if rating <= 2:
        return "negative"
    return "neutral"


def anonymize_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    """'Maria Santos' -> 'Maria S.'"""
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    if not first and not last:
        return "Anonymous"
    last_initial = f"{last[0].upper()}." if last else ""
    return f"{first} {last_initial}".strip()
