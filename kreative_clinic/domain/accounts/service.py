"""
Account service
Login and registration, password reset, staff accounts and dentist logins
"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import check_account_status
from ...config import FRONTEND_URL
from ...email_service import queue_email
from ...email_templates import password_reset_template
from ...models import User
from ...security_utils import (
    create_access_token,
    generate_password_reset_token,
    hash_password,
    password_fingerprint,
    verify_password,
    verify_password_reset_token,
)
from ...shared.errors import FieldValidationError
from ...shared.timeutils import clinic_now
from ..dentists.repository import DentistRepository
from .repository import UserRepository
from .schemas import DentistAccountCreate, RegisterRequest, StaffCreate, UserResponse

logger = logging.getLogger(__name__)

FAILED_LOGIN = "These credentials do not match our records."
RESET_SENT = "If an account exists for that email, a password reset link has been sent."


def serialize_user(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json")


class AccountService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = UserRepository()

    def _ensure_email_free(self, email: str) -> None:
        if self.repo.by_email(self.db, email):
            raise FieldValidationError.single("email", "The email has already been taken.")

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> dict:
        user = self.repo.by_email(self.db, email)
        if not user or not verify_password(password, user.password):
            logger.warning(f"⚠️ Failed login for {email}")
            raise FieldValidationError.single("email", FAILED_LOGIN)

        check_account_status(user, self.db)

        requires_password_change = False
        if user.role == "dentist":
            dentist = DentistRepository.get_by_email(self.db, user.email)
            if not dentist:
                raise HTTPException(status_code=403, detail={"status": "error", "message": "Dentist schedule not found"})
            if dentist.status != "active":
                raise HTTPException(
                    status_code=403,
                    detail={"status": "error", "message": "Your account is not active. Please contact the administrator."},
                )
            requires_password_change = not dentist.password_changed

        user = self.repo.save(self.db, user, last_login_at=clinic_now())
        token = create_access_token({"sub": str(user.id), "role": user.role, "ver": user.token_version or 0})
        logger.info(f"✅ User #{user.id} ({user.role}) logged in")

        result = {"token": token, "token_type": "bearer", "user": serialize_user(user)}
        if requires_password_change:
            result["requires_password_change"] = True
        return result

    def register(self, data: RegisterRequest) -> dict:
        self._ensure_email_free(data.email)
        user = self.repo.create(
            self.db,
            name=data.name,
            email=data.email.lower(),
            password=hash_password(data.password),
            role="patient",
            status="activated",
            contact_number=data.contact_number,
        )
        logger.info(f"✅ Patient account registered: user #{user.id}")
        token = create_access_token({"sub": str(user.id), "role": user.role, "ver": user.token_version or 0})
        return {"token": token, "token_type": "bearer", "user": serialize_user(user)}

    def logout(self, user: User) -> dict:
        """Revoke every token issued to the user so far"""
        self.repo.save(self.db, user, token_version=(user.token_version or 0) + 1)
        logger.info(f"👋 User #{user.id} ({user.role}) logged out")
        return {"message": "Logged out."}

    def change_password(self, user: User, current_password: str, new_password: str) -> dict:
        if not verify_password(current_password, user.password):
            raise FieldValidationError.single("current_password", "The current password is incorrect.")

        self.repo.save(self.db, user, password=hash_password(new_password))
        if user.role == "dentist":
            dentist = DentistRepository.get_by_email(self.db, user.email)
            if dentist and not dentist.password_changed:
                DentistRepository.save(self.db, dentist, password_changed=True)
        logger.info(f"🔧 Password changed for user #{user.id}")
        return {"message": "Password updated."}

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> dict:
        """Same response whether or not the account exists"""
        user = self.repo.by_email(self.db, email)
        if user and user.status != "deactivated":
            token = generate_password_reset_token(user.email, user.password)
            link = f"{FRONTEND_URL}/reset-password?token={token}"
            queue_email(self.db, user.email, "Reset your password", password_reset_template(user.name, link))
            logger.info(f"📧 Password reset link queued for user #{user.id}")
        return {"message": RESET_SENT}

    def reset_password(self, token: str, password: str) -> dict:
        payload = verify_password_reset_token(token)
        if not payload:
            raise FieldValidationError.single("token", "This password reset token is invalid or has expired.")

        user = self.repo.by_email(self.db, payload["email"])
        # A used token no longer matches the new password hash
        if not user or payload.get("pw") != password_fingerprint(user.password):
            raise FieldValidationError.single("token", "This password reset token is invalid or has expired.")

        self.repo.save(self.db, user, password=hash_password(password))
        logger.info(f"✅ Password reset for user #{user.id}")
        return {"message": "Your password has been reset."}

    # ------------------------------------------------------------------
    # Staff and dentist accounts
    # ------------------------------------------------------------------

    def list_staff(self) -> list[User]:
        return self.repo.staff(self.db)

    def create_staff(self, data: StaffCreate) -> User:
        self._ensure_email_free(data.email)
        user = self.repo.create(
            self.db,
            name=data.name.strip(),
            email=data.email.lower(),
            password=hash_password(data.password),
            role="staff",
            status="activated",
            contact_number=data.contact_number,
        )
        logger.info(f"✅ Staff account created: user #{user.id}")
        return user

    def toggle_staff_status(self, staff_id: int, admin: User) -> dict:
        user = self.repo.get(self.db, staff_id)
        if not user or user.role not in ("staff", "admin"):
            raise HTTPException(status_code=404, detail="Staff account not found")
        if user.id == admin.id:
            raise HTTPException(status_code=422, detail="You cannot deactivate your own account.")

        new_status = "deactivated" if user.status == "activated" else "activated"
        user = self.repo.save(self.db, user, status=new_status)
        logger.info(f"🔧 User #{user.id} {new_status} by admin #{admin.id}")
        return {"message": f"Account {new_status}.", "user": serialize_user(user)}

    def create_dentist_account(self, data: DentistAccountCreate) -> User:
        dentist = DentistRepository.get_by_email(self.db, data.email)
        if not dentist:
            raise FieldValidationError.single("email", "No dentist schedule exists for this email.")
        self._ensure_email_free(data.email)

        user = self.repo.create(
            self.db,
            name=data.name or dentist.dentist_name or dentist.dentist_code,
            email=dentist.email,
            password=hash_password(data.password),
            role="dentist",
            status="activated",
        )
        DentistRepository.save(self.db, dentist, password_changed=False)
        logger.info(f"✅ Dentist account created for {dentist.dentist_code}: user #{user.id}")
        return user
