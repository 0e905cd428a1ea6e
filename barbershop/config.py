# barbershop/config.py

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./barbershop.db")

# Staff authentication
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Bootstrap admin, created at start-up when missing
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Reservation flow timeouts
SLOT_LOCK_TTL_MINUTES = int(os.getenv("SLOT_LOCK_TTL_MINUTES", "15"))
BOOKING_SESSION_TIMEOUT_MINUTES = int(os.getenv("BOOKING_SESSION_TIMEOUT_MINUTES", "15"))
UNVERIFIED_BOOKING_TTL_MINUTES = int(os.getenv("UNVERIFIED_BOOKING_TTL_MINUTES", "15"))
DECLINED_RETENTION_DAYS = int(os.getenv("DECLINED_RETENTION_DAYS", "7"))
MAX_BOOKING_DAYS_AHEAD = int(os.getenv("MAX_BOOKING_DAYS_AHEAD", "30"))
VERIFICATION_CODE_LENGTH = int(os.getenv("VERIFICATION_CODE_LENGTH", "6"))

SERVICE_CACHE_TTL_SECONDS = int(os.getenv("SERVICE_CACHE_TTL_SECONDS", "60"))

# Email quotas
DAILY_EMAIL_LIMIT = int(os.getenv("DAILY_EMAIL_LIMIT", "20"))
BOOKING_EMAIL_LIMIT = int(os.getenv("BOOKING_EMAIL_LIMIT", "5"))
MIN_SECONDS_BETWEEN_EMAILS = int(os.getenv("MIN_SECONDS_BETWEEN_EMAILS", "60"))

# SMTP. When unset outside production, emails are written to the log instead.
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
MAIL_FROM = os.getenv("MAIL_FROM", "noreply@barbershop.local")
CONTACT_EMAIL = os.getenv("CONTACT_EMAIL", "contact@barbershop.local")
SHOP_NAME = os.getenv("SHOP_NAME", "Barbershop")

# Background cleanup
CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", str(6 * 60 * 60)))
RUN_CLEANUP_SCHEDULER = os.getenv("RUN_CLEANUP_SCHEDULER", "1").strip() == "1"
