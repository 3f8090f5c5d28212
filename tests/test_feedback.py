from datetime import timedelta

import pytest

from kreative_clinic.domain.feedback.rules import (
    QUESTIONS,
    anonymize_name,
    average_score,
    feedback_editable,
    sentiment,
    visit_eligibility,
)
from kreative_clinic.models_visit import PatientFeedback
from kreative_clinic.shared.timeutils import clinic_now, clinic_today


def answers(score: int = 5) -> dict:
    return {key: score for key in QUESTIONS}


@pytest.fixture
def finished_visit(make_visit, patient, cleaning_service, dentist):
    return make_visit(patient, cleaning_service, dentist_schedule_id=dentist.id)


class TestRules:
    """Windows, scoring and display helpers"""

    def test_eligibility(self, make_visit, patient):
        pending = make_visit(patient, status="pending")
        old = make_visit(
            patient,
            day=clinic_today() - timedelta(days=10),
            end_time=clinic_now() - timedelta(days=10),
        )

        assert visit_eligibility(pending, False)["reason"] == "visit_not_completed"
        assert visit_eligibility(old, False)["reason"] == "window_elapsed"

    def test_edit_window(self):
        now = clinic_now()
        open_feedback = PatientFeedback(submitted_at=now, editable_until=now + timedelta(hours=1))
        locked = PatientFeedback(submitted_at=now, editable_until=now + timedelta(hours=1), locked_at=now)

        assert feedback_editable(open_feedback, now) is True
        assert feedback_editable(open_feedback, now + timedelta(hours=2)) is False
        assert feedback_editable(locked, now) is False

    def test_helpers(self):
        assert average_score({"a": 4, "b": 5}) == 4.5
        assert average_score({}) is None
        assert sentiment(5) == "positive"
        assert sentiment(3) == "neutral"
        assert sentiment(1) == "negative"
        assert anonymize_name("Maria", "santos") == "Maria S."
        assert anonymize_name(None, None) == "Anonymous"


class TestPatientFeedback:
    """Rating a finished visit"""

    def test_form_shows_questions_and_eligibility(self, client, patient_headers, finished_visit):
        response = client.get(f"/api/patient/feedback/{finished_visit.id}", headers=patient_headers)

        assert response.status_code == 200
        body = response.json()
        assert len(body["questions"]) == len(QUESTIONS)
        assert body["feedback"] is None
        assert body["eligibility"]["can_rate"] is True

    def test_submit_feedback(self, client, patient_headers, finished_visit, dentist):
        response = client.post(
            "/api/patient/feedback",
            json={
                "patient_visit_id": finished_visit.id,
                "answers": answers(4),
                "dentist_rating": 5,
                "comment": "  Gentle and quick.  ",
            },
            headers=patient_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["average_score"] == 4
        assert data["comment"] == "Gentle and quick."
        assert data["dentist_schedule_id"] == dentist.id
        assert data["is_editable"] is True

    def test_second_submission_rejected(self, client, patient_headers, finished_visit):
        payload = {"patient_visit_id": finished_visit.id, "answers": answers()}
        client.post("/api/patient/feedback", json=payload, headers=patient_headers)

        response = client.post("/api/patient/feedback", json=payload, headers=patient_headers)

        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "feedback_exists"

    def test_missing_answer(self, client, patient_headers, finished_visit):
        partial = answers()
        partial.pop("wait_time_reasonable")

        response = client.post(
            "/api/patient/feedback",
            json={"patient_visit_id": finished_visit.id, "answers": partial},
            headers=patient_headers,
        )

        assert response.status_code == 422
        assert response.json()["errors"]["answers"] == ["An answer for wait_time_reasonable is required."]

    def test_edit_then_lock(self, client, patient_headers, db, finished_visit):
        created = client.post(
            "/api/patient/feedback",
            json={"patient_visit_id": finished_visit.id, "answers": answers(3)},
            headers=patient_headers,
        ).json()

        edited = client.put(
            f"/api/patient/feedback/{created['id']}", json={"answers": answers(5)}, headers=patient_headers
        )
        assert edited.status_code == 200
        assert edited.json()["average_score"] == 5

        feedback = db.query(PatientFeedback).one()
        feedback.editable_until = clinic_now() - timedelta(minutes=1)
        db.commit()

        locked = client.put(
            f"/api/patient/feedback/{created['id']}", json={"answers": answers(1)}, headers=patient_headers
        )
        assert locked.status_code == 422
        db.refresh(feedback)
        assert feedback.locked_reason == "edit_window_elapsed"

    def test_my_feedback(self, client, patient_headers, finished_visit):
        client.post(
            "/api/patient/feedback",
            json={"patient_visit_id": finished_visit.id, "answers": answers()},
            headers=patient_headers,
        )

        body = client.get("/api/patient/feedback", headers=patient_headers).json()

        assert body["total"] == 1
        assert body["data"][0]["service_name"] == "Oral Prophylaxis"


class TestDentistFeedback:
    """Admin view of one dentist's ratings"""

    def _add(self, db, visit, rating, comment=None, dentist_id=None):
        db.add(
            PatientFeedback(
                patient_visit_id=visit.id,
                patient_id=visit.patient_id,
                dentist_schedule_id=dentist_id,
                answers=answers(rating),
                average_score=rating,
                dentist_rating=rating,
                comment=comment,
                submitted_at=clinic_now(),
            )
        )
        db.commit()

    def test_summary_and_filters(self, client, admin_headers, db, patient, dentist, make_visit):
        self._add(db, make_visit(patient), 5, "Great", dentist.id)
        self._add(db, make_visit(patient), 3, None, dentist.id)
        self._add(db, make_visit(patient), 1, "Late", None)

        body = client.get(f"/api/admin/dentists/{dentist.id}/feedback", headers=admin_headers).json()
        assert body["summary"] == {"total": 2, "average_dentist_rating": 4.0, "average_score": 4.0}
        assert body["data"][0]["patient_name"] == "Juan D."

        with_comment = client.get(
            f"/api/admin/dentists/{dentist.id}/feedback?has_comment=with", headers=admin_headers
        ).json()
        assert with_comment["total"] == 1
        assert with_comment["data"][0]["sentiment"] == "positive"

        unassigned = client.get("/api/admin/dentists/unassigned/feedback", headers=admin_headers).json()
        assert unassigned["total"] == 1

    def test_unknown_dentist_key(self, client, admin_headers):
        response = client.get("/api/admin/dentists/someone/feedback", headers=admin_headers)

        assert response.status_code == 404
