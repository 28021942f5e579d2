import os

import pytz
from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dentalcare.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Appointment dates and times are wall-clock values in the clinic's timezone.
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))
AVAILABILITY_RANGE_DAYS = int(os.getenv("AVAILABILITY_RANGE_DAYS", "30"))
MAX_AVAILABILITY_RANGE_DAYS = int(os.getenv("MAX_AVAILABILITY_RANGE_DAYS", "62"))
CANCELLATION_NOTICE_HOURS = int(os.getenv("CANCELLATION_NOTICE_HOURS", "24"))
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))

DENTALCARE_API_URL = os.getenv("DENTALCARE_API_URL", "http://localhost:8000")
CLIENT_TIMEOUT_SECONDS = float(os.getenv("CLIENT_TIMEOUT_SECONDS", "10"))


def clinic_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(CLINIC_TIMEZONE)


def validate_runtime_config() -> None:
    try:
        clinic_timezone()
    except pytz.UnknownTimeZoneError as exc:
        raise RuntimeError(f"CLINIC_TIMEZONE '{CLINIC_TIMEZONE}' is not a known timezone.") from exc

    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
