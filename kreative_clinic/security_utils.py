"""
Security Utilities
Password hashing, access tokens, signed reset tokens, note encryption and random codes
"""

import base64
import hashlib
import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Optional

from cryptography.fernet import Fernet

# Token generation and validation
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from jose import JWTError
from jose import jwt as jose_jwt

# Password hashing
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, PASSWORD_RESET_MAX_AGE, SECRET_KEY, VISIT_NOTES_ENCRYPTION_KEY

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

UPPER_ALNUM = string.ascii_uppercase + string.digits


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against bcrypt hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


# ============================================================================
# TOKEN GENERATION & VALIDATION
# ============================================================================


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT access token

    Args:
        data: Claims to encode ("sub" should carry the user id as a string)
        expires_delta: Token lifetime (default ACCESS_TOKEN_EXPIRE_MINUTES)
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def password_fingerprint(password_hash: str) -> str:
    """Tail of the stored hash; changes whenever the password does"""
    return password_hash[-10:]


def generate_password_reset_token(email: str, password_hash: str) -> str:
    """Signed reset token bound to the current password, so it stops working once used"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps({"email": email, "pw": password_fingerprint(password_hash)}, salt="password-reset")


def verify_password_reset_token(token: str, max_age: int = PASSWORD_RESET_MAX_AGE) -> Optional[dict[str, Any]]:
    """Return the token payload (email, pw), or None if invalid/expired"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        data = serializer.loads(token, salt="password-reset", max_age=max_age)
        if not isinstance(data, dict) or not data.get("email"):
            return None
        return data
    except SignatureExpired:
        logger.warning("Password reset token expired")
        return None
    except BadSignature:
        logger.warning("Invalid password reset token signature")
        return None


# ============================================================================
# VISIT NOTE ENCRYPTION
# ============================================================================


def _notes_key() -> bytes:
    if VISIT_NOTES_ENCRYPTION_KEY:
        return VISIT_NOTES_ENCRYPTION_KEY.encode()
    return base64.urlsafe_b64encode(hashlib.sha256(f"visit-notes:{SECRET_KEY}".encode()).digest())


# Encryption for dentist notes
notes_cipher = Fernet(_notes_key())


def encrypt_note(value: Optional[str]) -> Optional[str]:
    """Encrypt a note for storage; empty values are stored as-is"""
    if not value:
        return value
    return notes_cipher.encrypt(value.encode()).decode()


def decrypt_note(value: Optional[str]) -> Optional[str]:
    """Decrypt a stored note; raises InvalidToken when the key does not match"""
    if not value:
        return value
    return notes_cipher.decrypt(value.encode()).decode()


# ============================================================================
# RANDOM CODES
# ============================================================================


def generate_code(length: int, alphabet: str = UPPER_ALNUM) -> str:
    """Cryptographically random code from the given alphabet"""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_reference_code() -> str:
    """8-character appointment reference code"""
    return generate_code(8)


def generate_visit_code() -> str:
    """6-character visit code handed to the dentist"""
    return generate_code(6)
