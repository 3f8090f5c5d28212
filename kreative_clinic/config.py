import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
PASSWORD_RESET_MAX_AGE = int(os.getenv("PASSWORD_RESET_MAX_AGE", "3600"))
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Clinic
CLINIC_NAME = os.getenv("CLINIC_NAME", "Kreative Dental Clinic")
CLINIC_ADDRESS = os.getenv("CLINIC_ADDRESS", "")
CLINIC_PHONE = os.getenv("CLINIC_PHONE", "")
CLINIC_EMAIL = os.getenv("CLINIC_EMAIL", "")
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "Asia/Manila")
BOOKING_WINDOW_DAYS = int(os.getenv("BOOKING_WINDOW_DAYS", "7"))
NO_SHOW_GRACE_MINUTES = int(os.getenv("NO_SHOW_GRACE_MINUTES", "15"))
NO_SHOW_WARNING_THRESHOLD = int(os.getenv("NO_SHOW_WARNING_THRESHOLD", "2"))
NO_SHOW_BLOCK_THRESHOLD = int(os.getenv("NO_SHOW_BLOCK_THRESHOLD", "3"))
PATIENT_ARCHIVE_YEARS = int(os.getenv("PATIENT_ARCHIVE_YEARS", "5"))

# Refunds
REFUND_DEADLINE_DAYS = int(os.getenv("REFUND_DEADLINE_DAYS", "7"))
REFUND_CANCELLATION_FEE = float(os.getenv("REFUND_CANCELLATION_FEE", "0"))

# Patient feedback
FEEDBACK_RATING_WINDOW_DAYS = int(os.getenv("FEEDBACK_RATING_WINDOW_DAYS", "7"))
FEEDBACK_EDIT_WINDOW_HOURS = int(os.getenv("FEEDBACK_EDIT_WINDOW_HOURS", "24"))

# SMS via AWS SNS
SMS_ENABLED = os.getenv("SMS_ENABLED", "false").lower() == "true"
DB_SEEDING = os.getenv("DB_SEEDING", "false").lower() == "true"
# Comma separated E.164 numbers allowed to receive SMS outside the DB whitelist
SMS_WHITELIST = [n.strip() for n in os.getenv("SMS_WHITELIST", "").split(",") if n.strip()]
SMS_SENDER_ID = os.getenv("SMS_SENDER_ID", "KreativeDen")
SMS_TYPE = os.getenv("SMS_TYPE", "Transactional")
AWS_REGION = os.getenv("AWS_REGION", "ap-southeast-1")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Kreative Dental Clinic <noreply@kreativedental.com>")
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL")

# Backups (generate key with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
BACKUP_DIR = os.getenv("BACKUP_DIR", str(Path(__file__).resolve().parent.parent / "storage" / "backups"))
BACKUP_ENCRYPTION_KEY = os.getenv("BACKUP_ENCRYPTION_KEY")

# Dentist visit notes at rest (Fernet key, derived from SECRET_KEY when unset)
VISIT_NOTES_ENCRYPTION_KEY = os.getenv("VISIT_NOTES_ENCRYPTION_KEY")
