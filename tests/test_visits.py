from datetime import timedelta

import pytest
from conftest import PASSWORD, auth_headers, make_user

from kreative_clinic.domain.visits.service import CODE_NOT_SENT_MESSAGE, rejection_note
from kreative_clinic.models import Patient, Payment
from kreative_clinic.models_inventory import InventoryBatch, InventoryItem, InventoryMovement
from kreative_clinic.models_notification import EmailLog, Notification
from kreative_clinic.models_visit import VisitNote
from kreative_clinic.security_utils import decrypt_note
from kreative_clinic.shared.timeutils import clinic_now, clinic_today


@pytest.fixture
def ready_visit(make_visit, patient, cleaning_service, dentist):
    """Pending visit with medical history done and the code already sent"""
    return make_visit(
        patient,
        cleaning_service,
        status="pending",
        visit_code="QWERTY",
        medical_history_status="completed",
        medical_history={"full_name": "Juan Dela Cruz"},
        dentist_schedule_id=dentist.id,
        visit_code_sent_at=clinic_now(),
    )


class TestStartVisit:
    """Walk-ins and appointment check-in"""

    def test_walkin_creates_placeholder_patient(self, client, staff_headers, db):
        response = client.post("/api/visits", json={"visit_type": "walkin"}, headers=staff_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["requires_medical_history"] is True
        assert body["visit"]["visit_type"] == "walkin"
        assert body["visit"]["medical_history_status"] == "pending"
        assert len(body["visit"]["visit_code"]) == 6

        placeholder = db.query(Patient).filter(Patient.id == body["visit"]["patient_id"]).one()
        assert placeholder.first_name == "Patient"
        assert len(placeholder.last_name) == 6
        assert placeholder.is_linked is False

    def test_appointment_check_in(self, client, staff_headers, patient, cleaning_service, make_appointment):
        appointment = make_appointment(patient, cleaning_service)

        first = client.post(
            "/api/visits", json={"visit_type": "appointment", "reference_code": "abcd-2345"}, headers=staff_headers
        )
        assert first.status_code == 201
        assert first.json()["message"] == "Medical history required before visit can proceed."
        assert first.json()["visit"]["appointment_id"] == appointment.id

        second = client.post(
            "/api/visits", json={"visit_type": "appointment", "reference_code": "ABCD2345"}, headers=staff_headers
        )
        assert second.status_code == 200
        assert second.json()["message"] == "Visit already exists for this appointment."
        assert second.json()["visit"]["id"] == first.json()["visit"]["id"]

    def test_appointment_must_be_today(self, client, staff_headers, patient, cleaning_service, make_appointment):
        make_appointment(patient, cleaning_service, day=clinic_today() + timedelta(days=1))

        response = client.post(
            "/api/visits", json={"visit_type": "appointment", "reference_code": "ABCD2345"}, headers=staff_headers
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Invalid or unavailable reference code."

    def test_pending_appointment_cannot_check_in(
        self, client, staff_headers, patient, cleaning_service, make_appointment
    ):
        make_appointment(patient, cleaning_service, status="pending")

        response = client.post(
            "/api/visits", json={"visit_type": "appointment", "reference_code": "ABCD2345"}, headers=staff_headers
        )

        assert response.status_code == 422

    def test_reference_code_required_for_appointment(self, client, staff_headers):
        response = client.post("/api/visits", json={"visit_type": "appointment"}, headers=staff_headers)

        assert response.status_code == 422
        assert "reference_code" in response.json()["errors"]

    def test_patient_cannot_start_visits(self, client, patient_headers):
        response = client.post("/api/visits", json={"visit_type": "walkin"}, headers=patient_headers)

        assert response.status_code == 403


class TestMedicalHistory:
    """Questionnaire gate before the dentist hand-off"""

    def test_submit_issues_new_code(self, client, staff_headers, db, patient, cleaning_service, make_appointment):
        appointment = make_appointment(patient, cleaning_service)
        visit_id = client.post(
            "/api/visits", json={"visit_type": "appointment", "reference_code": "ABCD2345"}, headers=staff_headers
        ).json()["visit"]["id"]

        response = client.post(
            f"/api/visits/{visit_id}/medical-history",
            json={"in_good_health": True, "allergic_penicillin": False, "unknown_key": "dropped"},
            headers=staff_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Medical history completed. Visit code generated."
        assert len(body["visit"]["visit_code"]) == 6
        assert body["visit"]["medical_history_status"] == "completed"
        history = body["medical_history"]
        assert history["full_name"] == "Juan Dela Cruz"
        assert history["contact_number"] == "09171234567"
        assert history["completed_at"] is not None
        assert "unknown_key" not in history

        db.refresh(appointment)
        assert appointment.reference_code is None

    def test_second_submit_rejected(self, client, staff_headers, ready_visit):
        response = client.post(f"/api/visits/{ready_visit.id}/medical-history", json={}, headers=staff_headers)

        assert response.status_code == 422
        assert response.json()["detail"] == "Medical history already completed for this visit."

    def test_get_medical_history(self, client, staff_headers, ready_visit):
        response = client.get(f"/api/visits/{ready_visit.id}/medical-history", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["requires_medical_history"] is False
        assert response.json()["medical_history"]["full_name"] == "Juan Dela Cruz"

    def test_unknown_visit(self, client, staff_headers):
        response = client.get("/api/visits/999/medical-history", headers=staff_headers)

        assert response.status_code == 404


class TestSendVisitCode:
    """Handing the visit to a dentist"""

    def test_send_queues_dentist_email(self, client, staff_headers, db, make_visit, patient, cleaning_service, dentist):
        visit = make_visit(
            patient,
            cleaning_service,
            status="pending",
            visit_code="ZXCVBN",
            medical_history_status="completed",
        )

        response = client.post(
            "/api/visits/send-visit-code",
            json={"visit_id": visit.id, "dentist_schedule_id": dentist.id},
            headers=staff_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Visit code sent successfully to dentist."
        assert body["dentist_name"] == "Dr. Maria Reyes"
        assert body["visit"]["dentist_schedule_id"] == dentist.id
        assert body["visit"]["visit_code_sent_at"] is not None

        email = db.query(EmailLog).one()
        assert email.to == "dr.reyes@example.com"
        assert email.subject == "New patient visit - Juan Dela Cruz"
        assert email.status == "queued"

    def test_dentist_account_gets_bell_notice(
        self, client, staff_user, staff_headers, db, make_visit, patient, cleaning_service, dentist
    ):
        dentist_user = make_user(db, "dentist", "dr.reyes@example.com", "Dr. Maria Reyes")
        visit = make_visit(
            patient, cleaning_service, status="pending", visit_code="ZXCVBN", medical_history_status="completed"
        )

        client.post(
            "/api/visits/send-visit-code",
            json={"visit_id": visit.id, "dentist_schedule_id": dentist.id},
            headers=staff_headers,
        )
        inbox = client.get("/api/notifications/mine", headers=auth_headers(dentist_user)).json()

        assert [n["title"] for n in inbox] == ["New Patient Visit - Juan Dela Cruz"]
        assert inbox[0]["type"] == "visit_code"
        assert inbox[0]["data"]["visit_code"] == "ZXCVBN"
        assert inbox[0]["data"]["action_url"] == "/dentist/visit/ZXCVBN"
        assert db.query(Notification).one().created_by == staff_user.id

    def test_requires_medical_history(self, client, staff_headers, make_visit, patient, dentist):
        visit = make_visit(patient, status="pending", visit_code="ZXCVBN", medical_history_status="pending")

        response = client.post(
            "/api/visits/send-visit-code",
            json={"visit_id": visit.id, "dentist_schedule_id": dentist.id},
            headers=staff_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"] == (
            "Medical history must be completed before sending visit code to dentist."
        )

    def test_unknown_dentist(self, client, staff_headers, ready_visit):
        response = client.post(
            "/api/visits/send-visit-code",
            json={"visit_id": ready_visit.id, "dentist_schedule_id": 999},
            headers=staff_headers,
        )

        assert response.status_code == 422
        assert "dentist_schedule_id" in response.json()["errors"]

    def test_inactive_dentist(self, client, staff_headers, db, ready_visit, dentist):
        dentist.status = "inactive"
        db.commit()

        response = client.post(
            "/api/visits/send-visit-code",
            json={"visit_id": ready_visit.id, "dentist_schedule_id": dentist.id},
            headers=staff_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Selected dentist is not working today."


class TestFinishAndReject:
    """Closing a visit without the completion details"""

    def test_finish_requires_sent_code(self, client, staff_headers, make_visit, patient):
        visit = make_visit(patient, status="pending", visit_code="ZXCVBN", medical_history_status="completed")

        response = client.post(f"/api/visits/{visit.id}/finish", headers=staff_headers)

        assert response.status_code == 422
        assert response.json()["detail"] == CODE_NOT_SENT_MESSAGE

    def test_finish_completes_appointment(
        self, client, staff_headers, db, patient, cleaning_service, dentist, make_appointment, make_visit
    ):
        appointment = make_appointment(patient, cleaning_service)
        visit = make_visit(
            patient,
            cleaning_service,
            status="pending",
            appointment_id=appointment.id,
            medical_history_status="completed",
            dentist_schedule_id=dentist.id,
            visit_code_sent_at=clinic_now(),
        )

        response = client.post(f"/api/visits/{visit.id}/finish", headers=staff_headers)

        assert response.json() == {"message": "Visit completed."}
        db.refresh(visit)
        db.refresh(appointment)
        assert visit.status == "completed"
        assert visit.end_time is not None
        assert visit.visit_code is None
        assert appointment.status == "completed"

    def test_finish_twice(self, client, staff_headers, ready_visit):
        client.post(f"/api/visits/{ready_visit.id}/finish", headers=staff_headers)

        response = client.post(f"/api/visits/{ready_visit.id}/finish", headers=staff_headers)

        assert response.status_code == 422
        assert response.json()["detail"] == "Only pending visits can be processed."

    def test_inquiry_only(self, client, staff_headers, db, ready_visit):
        response = client.post(
            f"/api/visits/{ready_visit.id}/reject", json={"reason": "inquiry_only"}, headers=staff_headers
        )

        assert response.json() == {"message": "Visit marked as inquiry only."}
        db.refresh(ready_visit)
        assert ready_visit.status == "inquiry"
        assert ready_visit.visit_code is None

    def test_line_too_long_note(self, client, staff_headers, db, ready_visit):
        response = client.post(
            f"/api/visits/{ready_visit.id}/reject",
            json={"reason": "line_too_long", "offered_appointment": True},
            headers=staff_headers,
        )

        assert response.json() == {"message": "Visit rejected."}
        db.refresh(ready_visit)
        assert ready_visit.status == "rejected"
        assert ready_visit.note == "Rejected: Line too long. Offered appointment: Yes"

    def test_rejection_notes(self):
        assert rejection_note("left", False) == "Rejected: Patient left"
        assert rejection_note("line_too_long", False) == "Rejected: Line too long. Offered appointment: No"


class TestCompleteWithDetails:
    """Stock, notes and payment settled in one step"""

    def _stock(self, db, quantity=10, threshold=0):
        item = InventoryItem(name="Gauze", sku_code="GZ-01", unit="pcs", low_stock_threshold=threshold)
        db.add(item)
        db.flush()
        db.add(
            InventoryBatch(
                item_id=item.id,
                qty_received=quantity,
                qty_on_hand=quantity,
                expiry_date=clinic_today() + timedelta(days=90),
                received_at=clinic_now(),
            )
        )
        db.commit()
        return item

    def test_paid_visit_records_cash_and_settles_appointment(
        self, client, staff_headers, db, patient, cleaning_service, dentist, make_appointment, make_visit
    ):
        appointment = make_appointment(patient, cleaning_service)
        visit = make_visit(
            patient,
            cleaning_service,
            status="pending",
            appointment_id=appointment.id,
            medical_history_status="completed",
            dentist_schedule_id=dentist.id,
            visit_code_sent_at=clinic_now(),
        )
        item = self._stock(db)

        response = client.post(
            f"/api/visits/{visit.id}/complete-with-details",
            json={
                "payment_status": "paid",
                "dentist_notes": "Routine cleaning",
                "stock_items": [{"item_id": item.id, "quantity": 3}],
            },
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Visit completed successfully"
        assert response.json()["visit"]["status"] == "completed"

        payment = db.query(Payment).filter(Payment.patient_visit_id == visit.id).one()
        assert payment.method == "cash"
        assert payment.amount_paid == 1000
        assert payment.reference_no.startswith(f"CASH-{visit.id}-")

        db.refresh(appointment)
        assert appointment.status == "completed"
        assert appointment.payment_status == "paid"

        movement = db.query(InventoryMovement).one()
        assert movement.type == "consume"
        assert movement.ref_type == "visit"
        assert movement.ref_id == visit.id

        notes = db.query(VisitNote).one()
        assert notes.patient_visit_id == visit.id
        assert decrypt_note(notes.dentist_notes_encrypted) == "Routine cleaning"

    def test_hmo_fully_covered(self, client, staff_headers, db, ready_visit):
        client.post(
            f"/api/visits/{ready_visit.id}/complete-with-details",
            json={"payment_status": "hmo_fully_covered"},
            headers=staff_headers,
        )

        payment = db.query(Payment).one()
        assert payment.method == "hmo"
        assert payment.amount_paid == 1000

    def test_low_stock_alert_after_commit(self, client, staff_headers, db, ready_visit):
        item = self._stock(db, quantity=5, threshold=3)

        client.post(
            f"/api/visits/{ready_visit.id}/complete-with-details",
            json={"payment_status": "unpaid", "stock_items": [{"item_id": item.id, "quantity": 4}]},
            headers=staff_headers,
        )

        email = db.query(EmailLog).one()
        assert email.to == "owner@example.com"
        assert email.subject == "Low stock: Gauze"

    def test_insufficient_stock_rolls_back(self, client, staff_headers, db, ready_visit):
        item = self._stock(db, quantity=2)

        response = client.post(
            f"/api/visits/{ready_visit.id}/complete-with-details",
            json={"payment_status": "paid", "stock_items": [{"item_id": item.id, "quantity": 5}]},
            headers=staff_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "Insufficient stock."
        db.refresh(ready_visit)
        assert ready_visit.status == "pending"
        assert db.query(Payment).count() == 0

    def test_invalid_teeth(self, client, staff_headers, ready_visit):
        response = client.post(
            f"/api/visits/{ready_visit.id}/complete-with-details",
            json={"payment_status": "paid", "teeth_treated": "1,A"},
            headers=staff_headers,
        )

        assert response.status_code == 422
        assert response.json()["message"] == "Invalid teeth format"
        assert "teeth_treated" in response.json()["errors"]


class TestDentistNotes:
    """Encrypted notes written during the visit"""

    @pytest.fixture
    def dentist_user(self, db):
        return make_user(db, "dentist", "dr.reyes@example.com", "Dr. Maria Reyes")

    def test_notes_are_encrypted_at_rest(self, client, db, dentist_user, ready_visit):
        response = client.post(
            f"/api/visits/{ready_visit.id}/save-dentist-notes",
            json={"dentist_notes": "Mild gingivitis", "teeth_treated": "3, 14"},
            headers=auth_headers(dentist_user),
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Dentist notes saved successfully."}
        notes = db.query(VisitNote).one()
        assert notes.created_by == dentist_user.id
        assert "gingivitis" not in notes.dentist_notes_encrypted
        assert decrypt_note(notes.dentist_notes_encrypted) == "Mild gingivitis"

    def test_partial_update_keeps_other_fields(self, client, staff_headers, dentist_user, ready_visit):
        client.post(
            f"/api/visits/{ready_visit.id}/save-dentist-notes",
            json={"dentist_notes": "Mild gingivitis"},
            headers=auth_headers(dentist_user),
        )
        client.post(
            f"/api/visits/{ready_visit.id}/save-dentist-notes",
            json={"findings": "Calculus on lower incisors"},
            headers=staff_headers,
        )

        notes = client.get(f"/api/visits/{ready_visit.id}/dentist-notes", headers=staff_headers).json()

        assert notes["dentist_notes"] == "Mild gingivitis"
        assert notes["findings"] == "Calculus on lower incisors"
        assert notes["created_by"] == dentist_user.id
        assert notes["service_price_at_date"] == 1000

    def test_reading_records_access(self, client, db, staff_user, staff_headers, ready_visit):
        client.post(
            f"/api/visits/{ready_visit.id}/save-dentist-notes", json={"treatment_plan": "Recall"}, headers=staff_headers
        )

        client.get(f"/api/visits/{ready_visit.id}/dentist-notes", headers=staff_headers)

        notes = db.query(VisitNote).one()
        db.refresh(notes)
        assert notes.last_accessed_by == staff_user.id
        assert notes.last_accessed_at is not None

    def test_no_notes_yet(self, client, staff_headers, ready_visit):
        notes = client.get(f"/api/visits/{ready_visit.id}/dentist-notes", headers=staff_headers).json()

        assert notes == {
            "dentist_notes": None,
            "findings": None,
            "treatment_plan": None,
            "teeth_treated": None,
            "service_price_at_date": 1000,
        }

    def test_only_pending_visits(self, client, staff_headers, make_visit, patient):
        visit = make_visit(patient, status="completed")

        response = client.post(
            f"/api/visits/{visit.id}/save-dentist-notes", json={"dentist_notes": "Late"}, headers=staff_headers
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Only pending visits can have notes updated."

    def test_invalid_teeth(self, client, staff_headers, ready_visit):
        response = client.post(
            f"/api/visits/{ready_visit.id}/save-dentist-notes", json={"teeth_treated": "1,A"}, headers=staff_headers
        )

        assert response.status_code == 422
        assert "teeth_treated" in response.json()["errors"]

    def test_view_notes_needs_password(self, client, staff_user, staff_headers, ready_visit):
        client.post(
            f"/api/visits/{ready_visit.id}/save-dentist-notes",
            json={"dentist_notes": "Mild gingivitis"},
            headers=staff_headers,
        )

        denied = client.post(
            f"/api/visits/{ready_visit.id}/view-notes", json={"password": "wrong-password"}, headers=staff_headers
        )
        allowed = client.post(
            f"/api/visits/{ready_visit.id}/view-notes", json={"password": PASSWORD}, headers=staff_headers
        )

        assert denied.status_code == 401
        assert denied.json()["detail"] == "Invalid password."
        assert allowed.status_code == 200
        assert allowed.json()["message"] == "Notes decrypted successfully."
        notes = allowed.json()["notes"]
        assert notes["dentist_notes"] == "Mild gingivitis"
        assert notes["completed_by"] == staff_user.id
        assert notes["last_accessed_by"] == staff_user.id

    def test_view_notes_without_notes(self, client, staff_headers, ready_visit):
        response = client.post(
            f"/api/visits/{ready_visit.id}/view-notes", json={"password": PASSWORD}, headers=staff_headers
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "No notes found for this visit."

    def test_patient_forbidden(self, client, patient_headers, ready_visit):
        response = client.get(f"/api/visits/{ready_visit.id}/dentist-notes", headers=patient_headers)

        assert response.status_code == 403


class TestPatientIdentity:
    """Walk-in placeholders matched to real records"""

    def test_update_patient_suggests_matches(self, client, staff_headers, db, patient):
        walkin = client.post("/api/visits", json={"visit_type": "walkin"}, headers=staff_headers).json()["visit"]

        response = client.put(
            f"/api/visits/{walkin['id']}/update-patient",
            json={"first_name": "Juan", "last_name": "Dela Cruz", "contact_number": "09170000000"},
            headers=staff_headers,
        )

        assert response.status_code == 200
        matches = response.json()["potential_matches"]
        assert [m["id"] for m in matches] == [patient.id]
        assert matches[0]["has_user_account"] is True

    def test_link_existing_removes_placeholder(self, client, staff_headers, db, patient):
        walkin = client.post("/api/visits", json={"visit_type": "walkin"}, headers=staff_headers).json()["visit"]

        response = client.post(
            f"/api/visits/{walkin['id']}/link-existing",
            json={"target_patient_id": patient.id},
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Visit successfully linked to existing patient profile."
        assert response.json()["visit"]["patient_id"] == patient.id
        assert db.query(Patient).filter(Patient.id == walkin["patient_id"]).first() is None

    def test_appointment_visit_cannot_be_relinked(
        self, client, staff_headers, patient, cleaning_service, make_visit, make_appointment
    ):
        appointment = make_appointment(patient, cleaning_service)
        visit = make_visit(patient, cleaning_service, status="pending", appointment_id=appointment.id)

        response = client.post(
            f"/api/visits/{visit.id}/link-existing", json={"target_patient_id": patient.id}, headers=staff_headers
        )

        assert response.status_code == 422


class TestTrackerAndPaymentRecords:
    """Front-desk lists"""

    def test_tracker_and_stats(self, client, staff_headers, patient, make_visit):
        make_visit(patient, status="pending")
        make_visit(patient, status="completed")
        make_visit(patient, status="completed", day=clinic_today() - timedelta(days=3))

        tracker = client.get("/api/visits", headers=staff_headers).json()
        stats = client.get("/api/visits/stats", headers=staff_headers).json()

        assert len(tracker) == 2
        assert stats == {"today_visits": 2, "pending_visits": 1}

    def test_payment_records_list_paid_only(
        self, client, staff_headers, patient, cleaning_service, make_visit, make_payment
    ):
        visit = make_visit(patient, cleaning_service)
        make_payment(amount=1000, method="cash", patient_visit_id=visit.id, reference_no="CASH-1")
        make_payment(amount=500, status="awaiting_payment", patient_visit_id=visit.id)

        response = client.get("/api/staff/payment-records?search=juan", headers=staff_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["per_page"] == 20
        assert body["data"][0]["patient_name"] == "Juan Dela Cruz"
        assert body["data"][0]["service_name"] == "Oral Prophylaxis"

    def test_receipt_data_for_unpaid_payment(self, client, staff_headers, make_payment):
        payment = make_payment(status="awaiting_payment")

        response = client.get(f"/api/staff/payment-records/{payment.id}/receipt-data", headers=staff_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Payment record not found"

