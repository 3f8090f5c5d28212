"""Scheduled jobs run by the ARQ worker"""

from datetime import timedelta

import resend
from sqlalchemy.orm import sessionmaker

from kreative_clinic import email_service, worker
from kreative_clinic.email_service import queue_email
from kreative_clinic.models import Patient, PatientManager, ServiceDiscount
from kreative_clinic.models_notification import EmailLog
from kreative_clinic.services.appointment_reminders import send_appointment_reminders
from kreative_clinic.services.email_queue import process_email_queue
from kreative_clinic.services.no_show_marker import mark_no_shows
from kreative_clinic.services.patient_archiver import archive_inactive_patients
from kreative_clinic.services.promo_expiry import cancel_expired_promos
from kreative_clinic.shared.timeutils import clinic_now, clinic_today

SIMPLE_MJML = "<mjml><mj-body><mj-section><mj-column><mj-text>Hi</mj-text></mj-column></mj-section></mj-body></mjml>"


class TestNoShowMarker:
    def test_marks_past_appointments(self, db, patient, cleaning_service, make_appointment):
        yesterday = make_appointment(patient, cleaning_service, day=clinic_today() - timedelta(days=1))
        tomorrow = make_appointment(patient, cleaning_service, day=clinic_today() + timedelta(days=1))

        summary = mark_no_shows(db)

        assert summary["marked"] == 1
        db.refresh(yesterday)
        db.refresh(tomorrow)
        assert yesterday.status == "no_show"
        assert tomorrow.status == "approved"
        assert db.query(PatientManager).one().no_show_count == 1

    def test_checked_in_appointment_is_skipped(self, db, patient, cleaning_service, make_appointment, make_visit):
        appointment = make_appointment(patient, cleaning_service, day=clinic_today() - timedelta(days=1))
        make_visit(patient, cleaning_service, appointment_id=appointment.id)

        assert mark_no_shows(db)["marked"] == 0

    def test_repeat_no_shows_escalate(self, db, patient, cleaning_service, make_appointment):
        for days_ago in (1, 2, 3):
            make_appointment(patient, cleaning_service, day=clinic_today() - timedelta(days=days_ago))

        summary = mark_no_shows(db)

        assert summary == {"checked": summary["checked"], "marked": 3, "blocked": 1}
        manager = db.query(PatientManager).one()
        assert manager.block_status == "blocked"
        assert manager.block_type == "account"


class TestPromoExpiry:
    def test_cancels_ended_promos(self, db, cleaning_service):
        yesterday = clinic_today() - timedelta(days=1)
        ended = ServiceDiscount(
            service_id=cleaning_service.id, start_date=yesterday, end_date=yesterday, discounted_price=500
        )
        running = ServiceDiscount(
            service_id=cleaning_service.id,
            start_date=yesterday,
            end_date=clinic_today(),
            discounted_price=500,
            status="launched",
        )
        db.add_all([ended, running])
        db.commit()

        assert cancel_expired_promos(db)["canceled"] == 1
        db.refresh(ended)
        db.refresh(running)
        assert ended.status == "canceled"
        assert ended.canceled_at is not None
        assert running.status == "launched"


class TestPatientArchiver:
    def _age(self, db, patient, years):
        patient.created_at = clinic_now() - timedelta(days=365 * years + 2)
        db.commit()

    def test_archives_dormant_accounts(self, db, patient):
        self._age(db, patient, 6)

        summary = archive_inactive_patients(db)

        assert summary["archived"] == 1
        db.refresh(patient)
        assert patient.archived_at is not None
        assert "since account creation" in patient.archived_reason

    def test_recent_visit_keeps_account(self, db, patient, make_visit):
        self._age(db, patient, 6)
        make_visit(patient, day=clinic_today() - timedelta(days=30))

        assert archive_inactive_patients(db)["archived"] == 0

    def test_dry_run_writes_nothing(self, db, patient):
        self._age(db, patient, 6)

        summary = archive_inactive_patients(db, dry_run=True)

        assert summary["archived"] == 1
        db.refresh(patient)
        assert patient.archived_at is None

    def test_walkin_records_are_ignored(self, db):
        db.add(Patient(first_name="Walk", last_name="In", created_at=clinic_now() - timedelta(days=365 * 10)))
        db.commit()

        assert archive_inactive_patients(db)["checked"] == 0


class TestAppointmentReminders:
    def test_queues_for_linked_patients(self, db, patient, cleaning_service, make_appointment):
        tomorrow = clinic_today() + timedelta(days=1)
        make_appointment(patient, cleaning_service, day=tomorrow)
        walkin = Patient(first_name="No", last_name="Account")
        db.add(walkin)
        db.commit()
        make_appointment(walkin, cleaning_service, day=tomorrow, time_slot="10:00-10:30", reference_code="WXYZ2345")

        summary = send_appointment_reminders(db)

        assert summary["queued"] == 1
        assert summary["skipped"] == 1
        assert db.query(EmailLog).one().to == "juan@example.com"

    def test_second_run_sends_nothing(self, db, patient, cleaning_service, make_appointment):
        appointment = make_appointment(patient, cleaning_service, day=clinic_today() + timedelta(days=1))

        first = send_appointment_reminders(db)
        second = send_appointment_reminders(db)

        assert first["queued"] == 1
        assert second["queued"] == 0
        assert db.query(EmailLog).count() == 1
        db.refresh(appointment)
        assert appointment.email_reminded_at is not None


class TestEmailQueue:
    def test_failed_after_three_attempts(self, db):
        entry = queue_email(db, "someone@example.com", "Hello", SIMPLE_MJML)

        for _ in range(3):
            process_email_queue(db)

        db.refresh(entry)
        assert entry.status == "failed"
        assert entry.attempts == 3
        assert entry.last_error == "Email service not configured"

    def test_sent_through_resend(self, db, monkeypatch):
        monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(resend.Emails, "send", lambda params: {"id": "msg_123"})
        entry = queue_email(db, "someone@example.com", "Hello", SIMPLE_MJML)

        summary = process_email_queue(db)

        assert summary == {"processed": 1, "sent": 1, "failed": 0}
        db.refresh(entry)
        assert entry.status == "sent"
        assert entry.provider_message_id == "msg_123"


class TestWorker:
    def test_run_uses_its_own_session(self, engine, monkeypatch):
        monkeypatch.setattr(worker, "SessionLocal", sessionmaker(bind=engine))

        summary = worker._run("promo expiry", cancel_expired_promos)

        assert summary["canceled"] == 0

    def test_every_task_is_scheduled(self):
        scheduled = {job.coroutine for job in worker.WorkerSettings.cron_jobs}

        assert scheduled == set(worker.WorkerSettings.functions)
