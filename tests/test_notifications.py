from datetime import timedelta

import pytest
import resend

from kreative_clinic import config, email_service
from kreative_clinic.domain.notifications.inbox import notify_roles, notify_users
from kreative_clinic.models_notification import EmailLog, NotificationLog, NotificationTarget, SmsWhitelist
from kreative_clinic.services import sms_service
from kreative_clinic.services.sms_service import build_reminder_message, send_sms
from kreative_clinic.shared.timeutils import clinic_now

WHITELISTED = "+639171234567"


class FakeSNS:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []

    def publish(self, **kwargs):
        if self.fail:
            raise RuntimeError("SNS unavailable")
        self.published.append(kwargs)
        return {"MessageId": f"msg-{len(self.published)}"}


@pytest.fixture
def sns(db, monkeypatch) -> FakeSNS:
    """SMS enabled, one whitelisted number, SNS replaced by a recorder"""
    fake = FakeSNS()
    monkeypatch.setattr(config, "SMS_ENABLED", True)
    monkeypatch.setattr(sms_service, "get_sns_client", lambda: fake)
    db.add(SmsWhitelist(phone_e164=WHITELISTED, label="Clinic phone"))
    db.commit()
    return fake


class TestSendSms:
    """Gates applied before publishing"""

    def test_disabled_is_sandboxed(self, db):
        log = send_sms(db, "09171234567", "Hello")

        assert log.status == "blocked_sandbox"
        assert log.to == WHITELISTED
        assert log.meta["subject"] == "Notification"

    def test_seeding_short_circuits(self, db, sns, monkeypatch):
        monkeypatch.setattr(config, "DB_SEEDING", True)

        assert send_sms(db, "09171234567", "Hello").status == "seeding"
        assert sns.published == []

    def test_missing_recipient(self, db, sns):
        log = send_sms(db, None, "Hello")

        assert log.status == "blocked_sandbox"
        assert log.to == "N/A"

    def test_not_whitelisted(self, db, sns):
        assert send_sms(db, "09998887777", "Hello").status == "blocked_sandbox"

    def test_env_whitelist(self, db, sns, monkeypatch):
        monkeypatch.setattr(config, "SMS_WHITELIST", ["+639998887777"])

        assert send_sms(db, "09998887777", "Hello").status == "sent"

    def test_sent_with_sender_id(self, db, sns):
        log = send_sms(db, "0917 123 4567", "Your appointment is confirmed")

        assert log.status == "sent"
        assert log.provider_message_id == "msg-1"
        published = sns.published[0]
        assert published["PhoneNumber"] == WHITELISTED
        assert published["MessageAttributes"]["AWS.SNS.SMS.SenderID"]["StringValue"] == "KreativeDen"

    def test_duplicate_within_window(self, db, sns):
        send_sms(db, WHITELISTED, "Reminder: see you tomorrow at 09:00")

        second = send_sms(db, WHITELISTED, "Reminder: see you tomorrow at 09:00")

        assert second.status == "duplicate"
        assert len(sns.published) == 1

    def test_provider_failure_is_logged(self, db, sns, monkeypatch):
        monkeypatch.setattr(sms_service, "get_sns_client", lambda: FakeSNS(fail=True))

        log = send_sms(db, WHITELISTED, "Hello")

        assert log.status == "failed"
        assert log.error == "SNS unavailable"

    def test_default_reminder_text(self, patient, cleaning_service, make_appointment):
        appointment = make_appointment(patient, cleaning_service)

        text = build_reminder_message(appointment)

        assert "Ref: ABCD2345" in text
        assert text.startswith("Hello Juan Dela Cruz,")
        assert build_reminder_message(appointment, "Custom", edited=True) == "Custom"
        assert build_reminder_message(appointment, "Custom", edited=False) == text


class TestWhitelistAdmin:
    def test_add_list_remove(self, client, admin_headers, db):
        created = client.post(
            "/api/admin/sms-whitelist", json={"phone": "09181234567", "label": "Owner"}, headers=admin_headers
        )
        assert created.status_code == 201
        assert created.json()["phone_e164"] == "+639181234567"

        duplicate = client.post("/api/admin/sms-whitelist", json={"phone": "+639181234567"}, headers=admin_headers)
        assert duplicate.status_code == 422
        assert duplicate.json()["errors"]["phone"] == ["This number is already whitelisted."]

        listed = client.get("/api/admin/sms-whitelist", headers=admin_headers).json()
        assert len(listed) == 1

        removed = client.delete(f"/api/admin/sms-whitelist/{created.json()['id']}", headers=admin_headers)
        assert removed.json() == {"message": "Removed from whitelist."}
        assert db.query(SmsWhitelist).count() == 0

    def test_invalid_phone(self, client, admin_headers):
        response = client.post("/api/admin/sms-whitelist", json={"phone": "1234567890"}, headers=admin_headers)

        assert response.status_code == 422
        assert "phone" in response.json()["errors"]


class TestNotificationLogs:
    def test_test_sms_and_log_filters(self, client, admin_headers, db):
        response = client.post("/api/admin/test-sms", json={"to": "09171234567"}, headers=admin_headers)
        assert response.json()["status"] == "blocked_sandbox"
        send_sms(db, "09181234567", "Other")

        by_status = client.get("/api/admin/notification-logs?status=blocked_sandbox", headers=admin_headers).json()
        by_number = client.get("/api/admin/notification-logs?to=9171234567", headers=admin_headers).json()

        assert by_status["total"] == 2
        assert by_number["total"] == 1
        assert by_number["data"][0]["meta"]["subject"] == "Test SMS"
        assert db.query(NotificationLog).count() == 2


class TestQueuedEmails:
    @pytest.fixture
    def emails(self, db):
        rows = [
            EmailLog(to="juan@example.com", subject="Reminder", html="<p>hi</p>", status="queued"),
            EmailLog(to="ana@example.com", subject="Receipt", html="<p>hi</p>", status="sent", attempts=1),
            EmailLog(
                to="owner@example.com",
                subject="Low stock",
                html="<p>hi</p>",
                status="failed",
                attempts=3,
                last_error="Email service not configured",
            ),
        ]
        db.add_all(rows)
        db.commit()
        return rows

    def test_list_and_stats(self, client, admin_headers, emails):
        failed = client.get("/api/admin/queued-emails?status=failed", headers=admin_headers).json()
        stats = client.get("/api/admin/queued-emails/stats", headers=admin_headers).json()

        assert failed["total"] == 1
        assert failed["data"][0]["to"] == "owner@example.com"
        assert "html" not in failed["data"][0]
        assert stats == {"queued": 1, "sent": 1, "failed": 1, "total": 3}

    def test_retry_all(self, client, admin_headers, db, emails, monkeypatch):
        monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(resend.Emails, "send", lambda params: {"id": "msg_retry"})

        response = client.post("/api/admin/queued-emails/retry-all", headers=admin_headers)

        assert response.json() == {"message": "1 failed email(s) re-queued.", "requeued": 1, "sent": 1}
        retried = db.query(EmailLog).filter(EmailLog.subject == "Low stock").one()
        db.refresh(retried)
        assert retried.status == "sent"
        assert retried.attempts == 1
        assert retried.provider_message_id == "msg_retry"

    def test_retry_without_provider_stays_queued(self, client, admin_headers, db, emails):
        response = client.post("/api/admin/queued-emails/retry-all", headers=admin_headers)

        assert response.json()["sent"] == 0
        retried = db.query(EmailLog).filter(EmailLog.subject == "Low stock").one()
        db.refresh(retried)
        assert retried.status == "queued"
        assert retried.attempts == 1

    def test_staff_forbidden(self, client, staff_headers):
        assert client.get("/api/admin/queued-emails", headers=staff_headers).status_code == 403


class TestInbox:
    """Notification bell for the signed-in user"""

    def test_targeted_notice_reaches_only_its_user(self, client, db, staff_user, staff_headers, admin_headers):
        notify_users(db, [staff_user], "system", "Shift change", "Front desk opens at 8")
        db.commit()

        staff_items = client.get("/api/notifications/mine", headers=staff_headers).json()
        admin_items = client.get("/api/notifications/mine", headers=admin_headers).json()

        assert [n["title"] for n in staff_items] == ["Shift change"]
        assert staff_items[0]["read_at"] is None
        assert admin_items == []

    def test_broadcast_respects_roles(self, client, db, staff_headers, patient_headers):
        notify_roles(db, ["admin", "staff"], "low_stock", "Low stock: Gloves", severity="warning")
        notify_roles(db, None, "system", "Clinic closed on Friday")
        db.commit()

        staff_titles = [n["title"] for n in client.get("/api/notifications/mine", headers=staff_headers).json()]
        patient_titles = [n["title"] for n in client.get("/api/notifications/mine", headers=patient_headers).json()]

        assert staff_titles == ["Clinic closed on Friday", "Low stock: Gloves"]
        assert patient_titles == ["Clinic closed on Friday"]

    def test_mark_all_read(self, client, db, staff_user, staff_headers):
        notify_users(db, [staff_user], "system", "Shift change")
        notify_roles(db, ["staff"], "system", "New SOP")
        db.commit()

        before = client.get("/api/notifications/unread-count", headers=staff_headers).json()
        marked = client.post("/api/notifications/mark-all-read", headers=staff_headers).json()
        after = client.get("/api/notifications/unread-count", headers=staff_headers).json()

        assert before == {"unread": 2}
        assert marked == {"message": "All notifications marked as read.", "marked": 2}
        assert after == {"unread": 0}
        assert db.query(NotificationTarget).filter(NotificationTarget.user_id == staff_user.id).count() == 2

    def test_expired_notice_is_hidden(self, client, db, staff_headers):
        notice = notify_roles(db, ["staff"], "system", "Old news")
        notice.effective_until = clinic_now() - timedelta(days=1)
        db.commit()

        assert client.get("/api/notifications/mine", headers=staff_headers).json() == []
        assert client.get("/api/notifications/unread-count", headers=staff_headers).json() == {"unread": 0}

    def test_requires_login(self, client):
        assert client.get("/api/notifications/mine").status_code == 401
