"""Shared validation utilities"""

import re
from typing import Optional


def normalize_ph_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a Philippine mobile number to E.164 format.

    09XXXXXXXXX and 9XXXXXXXXX become +639XXXXXXXXX; numbers already in
    E.164 are returned as-is (digits only after the plus sign).
    """
    if not phone:
        return phone

    cleaned = re.sub(r"[^\d+]", "", phone)
    if cleaned.startswith("+"):
        return "+" + re.sub(r"\D", "", cleaned)

    digits = re.sub(r"\D", "", cleaned)
    if digits.startswith("09") and len(digits) == 11:
        return "+63" + digits[1:]
    if digits.startswith("9") and len(digits) == 10:
        return "+63" + digits
    if digits.startswith("63") and len(digits) == 12:
        return "+" + digits
    return digits


def validate_ph_mobile(phone: Optional[str]) -> Optional[str]:
    """Accept 09XXXXXXXXX / +639XXXXXXXXX, return the value trimmed"""
    if not phone:
        return phone
    value = phone.strip()
    normalized = normalize_ph_phone(value)
    if not re.fullmatch(r"\+639\d{9}", normalized or ""):
        raise ValueError("Contact number must be a valid mobile number (09XXXXXXXXX)")
    return value


def normalize_reference_code(code: Optional[str]) -> str:
    """Strip everything but letters and digits and uppercase"""
    return re.sub(r"[^A-Za-z0-9]", "", code or "").upper()


def validate_password(password: str) -> str:
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters long")
    return password
