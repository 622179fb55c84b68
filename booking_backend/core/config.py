import os
from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: tuple[str, ...]) -> frozenset[str]:
    if value is None:
        return frozenset(default)
    return frozenset(item.strip().lower() for item in value.split(",") if item.strip())

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

DEFAULT_SLOT_INTERVAL_MINUTES = int(os.getenv("DEFAULT_SLOT_INTERVAL_MINUTES", "30"))

VALIDATION_CODE_LENGTH = int(os.getenv("VALIDATION_CODE_LENGTH", "6"))
VALIDATION_MAX_ATTEMPTS = int(os.getenv("VALIDATION_MAX_ATTEMPTS", "3"))

# Payment methods whose capture is reported later by the processor (e.g. PIX).
ASYNC_PAYMENT_METHODS = _get_list(os.getenv("ASYNC_PAYMENT_METHODS"), default=("pix",))
AUTO_CONFIRM_PAID_BOOKINGS = _get_bool(os.getenv("AUTO_CONFIRM_PAID_BOOKINGS"), default=False)

MAX_APPOINTMENT_NOTES_LENGTH = 600

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DEFAULT_SLOT_INTERVAL_MINUTES <= 0:
        raise RuntimeError("DEFAULT_SLOT_INTERVAL_MINUTES must be positive.")
