"""Accounts router - authentication, password reset and staff management"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import (
    ChangePasswordRequest,
    DentistAccountCreate,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    StaffCreate,
    UserResponse,
)
from .service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Accounts"])

login_rate_limit = create_rate_limiter(limit=5, window_seconds=60, key_prefix="login")
password_reset_rate_limit = create_rate_limiter(limit=3, window_seconds=300, key_prefix="password_reset")


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db)


# ============================================================================
# AUTHENTICATION
# ============================================================================


@router.post("/login", dependencies=[Depends(login_rate_limit)])
async def login(data: LoginRequest, service: AccountService = Depends(get_account_service)):
    return service.login(data.email, data.password)


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    return service.logout(current_user)


@router.post("/register", status_code=201)
async def register(data: RegisterRequest, service: AccountService = Depends(get_account_service)):
    """Create a patient account"""
    return service.register(data)


@router.get("/user", response_model=UserResponse)
async def get_user(current_user: User = Depends(get_current_user)):
    """Get current authenticated user"""
    return current_user


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    return service.change_password(current_user, data.current_password, data.password)


@router.post("/forgot-password", dependencies=[Depends(password_reset_rate_limit)])
async def forgot_password(data: ForgotPasswordRequest, service: AccountService = Depends(get_account_service)):
    return service.forgot_password(data.email)


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, service: AccountService = Depends(get_account_service)):
    return service.reset_password(data.token, data.password)


# ============================================================================
# STAFF MANAGEMENT
# ============================================================================


@router.get("/admin/staff", response_model=list[UserResponse])
async def list_staff(
    current_user: User = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.list_staff()


@router.post("/admin/staff", response_model=UserResponse, status_code=201)
async def create_staff(
    data: StaffCreate,
    current_user: User = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.create_staff(data)


@router.post("/admin/staff/{staff_id}/toggle-status")
async def toggle_staff_status(
    staff_id: int,
    current_user: User = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.toggle_staff_status(staff_id, current_user)


@router.post("/dentist/create-account", response_model=UserResponse, status_code=201)
async def create_dentist_account(
    data: DentistAccountCreate,
    current_user: User = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    """Create the login for an existing dentist schedule"""
    return service.create_dentist_account(data)
