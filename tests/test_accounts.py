from conftest import PASSWORD, auth_headers, make_user

from kreative_clinic.models import User
from kreative_clinic.models_notification import EmailLog
from kreative_clinic.security_utils import generate_password_reset_token, verify_password


class TestLogin:
    """Session endpoints"""

    def test_login_returns_token(self, client, staff_user):
        response = client.post("/api/login", json={"email": "STAFF@example.com", "password": PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["role"] == "staff"
        assert body["user"]["last_login_at"] is not None

        me = client.get("/api/user", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.json()["email"] == "staff@example.com"

    def test_wrong_password(self, client, staff_user):
        response = client.post("/api/login", json={"email": "staff@example.com", "password": "wrong-password"})

        assert response.status_code == 422
        assert response.json()["errors"]["email"] == ["These credentials do not match our records."]

    def test_deactivated_account(self, client, db):
        make_user(db, "staff", "old@example.com", "Old Staff", status="deactivated")

        response = client.post("/api/login", json={"email": "old@example.com", "password": PASSWORD})

        assert response.status_code == 403
        assert response.json()["detail"]["account_deactivated"] is True

    def test_dentist_must_change_password(self, client, db, dentist):
        make_user(db, "dentist", dentist.email, "Dr. Maria Reyes")

        response = client.post("/api/login", json={"email": dentist.email, "password": PASSWORD})

        assert response.status_code == 200
        assert response.json()["requires_password_change"] is True

    def test_malformed_token(self, client):
        response = client.get("/api/user", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token format. Expected a valid JWT token."

    def test_logout_revokes_issued_tokens(self, client, staff_user):
        old = client.post("/api/login", json={"email": "staff@example.com", "password": PASSWORD}).json()["token"]
        headers = {"Authorization": f"Bearer {old}"}

        logged_out = client.post("/api/logout", headers=headers)
        reused = client.get("/api/user", headers=headers)
        fresh = client.post("/api/login", json={"email": "staff@example.com", "password": PASSWORD}).json()["token"]

        assert logged_out.json() == {"message": "Logged out."}
        assert reused.status_code == 401
        assert reused.json()["detail"] == "Session has ended. Please log in again."
        assert client.get("/api/user", headers={"Authorization": f"Bearer {fresh}"}).status_code == 200

    def test_logout_requires_login(self, client):
        assert client.post("/api/logout").status_code == 401


class TestRegistration:
    """Patient self sign-up"""

    def test_register_patient(self, client, db):
        response = client.post(
            "/api/register",
            json={
                "name": " Ana Cruz ",
                "email": "Ana.Cruz@Example.com",
                "password": "longenough",
                "password_confirmation": "longenough",
                "contact_number": "09181234567",
            },
        )

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "patient"
        user = db.query(User).filter(User.email == "ana.cruz@example.com").one()
        assert user.name == "Ana Cruz"

    def test_duplicate_email(self, client, patient_user):
        response = client.post(
            "/api/register", json={"name": "Juan", "email": "JUAN@example.com", "password": "longenough"}
        )

        assert response.status_code == 422
        assert response.json()["errors"]["email"] == ["The email has already been taken."]

    def test_short_password_and_bad_phone(self, client):
        response = client.post(
            "/api/register",
            json={"name": "Ana", "email": "ana@example.com", "password": "short", "contact_number": "12345"},
        )

        assert response.status_code == 422
        errors = response.json()["errors"]
        assert errors["password"] == ["Password must be at least 8 characters long"]
        assert "contact_number" in errors


class TestPasswords:
    """Change and reset"""

    def test_change_password(self, client, db, staff_user, staff_headers):
        response = client.post(
            "/api/change-password",
            json={"current_password": PASSWORD, "password": "new-password-1"},
            headers=staff_headers,
        )

        assert response.json() == {"message": "Password updated."}
        db.refresh(staff_user)
        assert verify_password("new-password-1", staff_user.password)

    def test_change_password_wrong_current(self, client, staff_headers):
        response = client.post(
            "/api/change-password",
            json={"current_password": "nope-nope", "password": "new-password-1"},
            headers=staff_headers,
        )

        assert response.status_code == 422
        assert "current_password" in response.json()["errors"]

    def test_forgot_password_queues_email(self, client, db, patient_user):
        response = client.post("/api/forgot-password", json={"email": "juan@example.com"})
        unknown = client.post("/api/forgot-password", json={"email": "nobody@example.com"})

        assert response.json() == unknown.json()
        email = db.query(EmailLog).one()
        assert email.to == "juan@example.com"
        assert "reset-password?token=" in email.html

    def test_reset_password(self, client, db, patient_user):
        token = generate_password_reset_token(patient_user.email, patient_user.password)

        response = client.post("/api/reset-password", json={"token": token, "password": "brand-new-pass"})

        assert response.json() == {"message": "Your password has been reset."}
        db.refresh(patient_user)
        assert verify_password("brand-new-pass", patient_user.password)

    def test_reset_token_works_once(self, client, patient_user):
        token = generate_password_reset_token(patient_user.email, patient_user.password)

        first = client.post("/api/reset-password", json={"token": token, "password": "brand-new-pass"})
        replay = client.post("/api/reset-password", json={"token": token, "password": "attacker-pass"})

        assert first.status_code == 200
        assert replay.status_code == 422
        assert replay.json()["errors"]["token"] == ["This password reset token is invalid or has expired."]

    def test_reset_token_dies_after_password_change(self, client, db, patient_user, patient_headers):
        token = generate_password_reset_token(patient_user.email, patient_user.password)
        client.post(
            "/api/change-password",
            json={"current_password": PASSWORD, "password": "changed-pass-1"},
            headers=patient_headers,
        )

        response = client.post("/api/reset-password", json={"token": token, "password": "brand-new-pass"})

        assert response.status_code == 422
        db.refresh(patient_user)
        assert verify_password("changed-pass-1", patient_user.password)

    def test_reset_with_bad_token(self, client):
        response = client.post("/api/reset-password", json={"token": "garbage", "password": "brand-new-pass"})

        assert response.status_code == 422
        assert "token" in response.json()["errors"]


class TestStaffAccounts:
    """Admin-managed staff and dentist logins"""

    def test_create_and_list_staff(self, client, admin_headers):
        created = client.post(
            "/api/admin/staff",
            json={"name": "New Staff", "email": "new@example.com", "password": "password123"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["role"] == "staff"

        listed = client.get("/api/admin/staff", headers=admin_headers).json()
        assert [u["email"] for u in listed] == ["new@example.com"]

    def test_toggle_status(self, client, admin_headers, staff_user):
        response = client.post(f"/api/admin/staff/{staff_user.id}/toggle-status", headers=admin_headers)

        assert response.json()["message"] == "Account deactivated."
        assert client.get("/api/user", headers=auth_headers(staff_user)).status_code == 403

    def test_cannot_deactivate_self(self, client, admin_headers, admin_user):
        response = client.post(f"/api/admin/staff/{admin_user.id}/toggle-status", headers=admin_headers)

        assert response.status_code == 422

    def test_dentist_account_requires_schedule(self, client, admin_headers, dentist):
        missing = client.post(
            "/api/dentist/create-account",
            json={"email": "ghost@example.com", "password": "password123"},
            headers=admin_headers,
        )
        assert missing.status_code == 422

        created = client.post(
            "/api/dentist/create-account",
            json={"email": dentist.email, "password": "password123"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["name"] == "Dr. Maria Reyes"
        assert created.json()["role"] == "dentist"
