import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import Patient, User
from .security_utils import verify_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

DEACTIVATED_MESSAGE = "This account is deactivated. If you think this is a mistake, please contact the clinic."
ARCHIVED_MESSAGE = (
    "This account has been archived due to inactivity. Please contact the clinic to regain access."
)


def check_account_status(user: User, db: Session) -> None:
    """Reject deactivated accounts (403) and archived patient accounts (423)"""
    if user.status == "deactivated":
        logger.warning(f"⚠️ Deactivated account attempted access: user_id={user.id}")
        raise HTTPException(
            status_code=403,
            detail={"status": "error", "message": DEACTIVATED_MESSAGE, "account_deactivated": True},
        )

    if user.role == "patient":
        patient = db.query(Patient).filter(Patient.user_id == user.id).first()
        if patient and patient.archived_at:
            logger.warning(f"⚠️ Archived patient attempted access: user_id={user.id}")
            raise HTTPException(
                status_code=423,
                detail={"status": "error", "message": ARCHIVED_MESSAGE, "archived": True},
            )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user"""

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, length: {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    payload = verify_access_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = db.query(User).filter(User.id == int(payload["sub"])).first()
    if not user:
        logger.error(f"❌ Token subject not found: {payload.get('sub')}")
        raise HTTPException(status_code=401, detail="User not found")

    if payload.get("ver", 0) != (user.token_version or 0):
        raise HTTPException(status_code=401, detail="Session has ended. Please log in again.")

    check_account_status(user, db)
    return user


def require_roles(*roles: str):
    """
    Dependency factory restricting an endpoint to the given roles

    Example usage:
        @router.get("/admin/staff")
        async def list_staff(current_user: User = Depends(require_roles("admin"))):
            ...
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(
                f"⚠️ User {current_user.id} with role {current_user.role} denied (needs {', '.join(roles)})"
            )
            raise HTTPException(status_code=403, detail="Forbidden.")
        return current_user

    return role_checker


require_admin = require_roles("admin")
require_staff = require_roles("admin", "staff")
require_patient = require_roles("patient")
require_dentist = require_roles("dentist")
