import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])


SERVICE_TIME_ZONE = os.getenv("SERVICE_TIME_ZONE", "America/Halifax")
BUSINESS_OPEN_TIME = os.getenv("BUSINESS_OPEN_TIME", "08:00")
BUSINESS_CLOSE_TIME = os.getenv("BUSINESS_CLOSE_TIME", "18:00")
SLOT_INCREMENT_MINUTES = _get_int(os.getenv("SLOT_INCREMENT_MINUTES"), 30)
CONFLICT_BUFFER_MINUTES = _get_int(os.getenv("CONFLICT_BUFFER_MINUTES"), 30)
DEFAULT_SERVICE_DURATION_MINUTES = _get_int(os.getenv("DEFAULT_SERVICE_DURATION_MINUTES"), 60)
# Python weekday numbers, Monday == 0.
EXCLUDED_WEEKDAYS = tuple(int(day) for day in _get_list(os.getenv("EXCLUDED_WEEKDAYS"), ["0", "6"]))

CALENDAR_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "5"))
BOOKING_STORE_TIMEOUT_SECONDS = float(os.getenv("BOOKING_STORE_TIMEOUT_SECONDS", "5"))

# Public booking submissions allowed per client in each window.
BOOKING_RATE_LIMIT_REQUESTS = _get_int(os.getenv("BOOKING_RATE_LIMIT_REQUESTS"), 5)
BOOKING_RATE_LIMIT_WINDOW_SECONDS = _get_int(os.getenv("BOOKING_RATE_LIMIT_WINDOW_SECONDS"), 60)

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN", "")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "")

ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not ADMIN_PASSWORD:
        raise RuntimeError("ADMIN_PASSWORD must be set in production.")
