import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_int(name: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid float for {name}: {raw!r}") from None


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./slotkeeper.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Bearer key for the provider-facing admin endpoints
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

# Public base URL, used to build OAuth redirects
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8000")

# All wall-clock times (availability windows, slot labels) are in this zone
PROVIDER_TIMEZONE = os.getenv("PROVIDER_TIMEZONE", "UTC")

# Booking concurrency: "redis", "database" or "memory" (single instance only)
BOOKING_LOCK_BACKEND = os.getenv("BOOKING_LOCK_BACKEND", "memory").lower()
BOOKING_LOCK_TIMEOUT = _env_int("BOOKING_LOCK_TIMEOUT", "10")

# Per-IP booking attempts
BOOKING_RATE_LIMIT = _env_int("BOOKING_RATE_LIMIT", "10")
BOOKING_RATE_WINDOW = _env_int("BOOKING_RATE_WINDOW", "3600")

# Google Calendar OAuth Configuration
# Client ID / secret are entered by the provider and stored (encrypted) in the database.
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", f"{APP_BASE_URL}/admin/google-calendar/callback")
GCAL_BUSY_CACHE_TTL = _env_int("GCAL_BUSY_CACHE_TTL", "300")  # 5 minutes
GCAL_RETRY_DELAY = _env_float("GCAL_RETRY_DELAY", "1.0")
GCAL_HTTP_TIMEOUT = _env_float("GCAL_HTTP_TIMEOUT", "15")


@dataclass(frozen=True)
class EngineSettings:
    """Tunables injected into the slot calculator, booking manager and calendar adapter."""

    timezone: str = PROVIDER_TIMEZONE
    lock_backend: str = BOOKING_LOCK_BACKEND
    lock_timeout: int = BOOKING_LOCK_TIMEOUT
    rate_limit: int = BOOKING_RATE_LIMIT
    rate_window_seconds: int = BOOKING_RATE_WINDOW
    busy_cache_ttl: int = GCAL_BUSY_CACHE_TTL
    retry_delay: float = GCAL_RETRY_DELAY
    http_timeout: float = GCAL_HTTP_TIMEOUT
    google_redirect_uri: str = GOOGLE_REDIRECT_URI
    slot_stride_minutes: int = 30


def _validate_settings(settings: EngineSettings) -> None:
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    try:
        ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"PROVIDER_TIMEZONE is not a known timezone: {settings.timezone!r}") from None
    if settings.lock_backend not in ("redis", "database", "memory"):
        raise ValueError(
            f"BOOKING_LOCK_BACKEND must be redis, database or memory, got {settings.lock_backend!r}"
        )
    if settings.lock_timeout < 1:
        raise ValueError(f"BOOKING_LOCK_TIMEOUT must be >= 1, got {settings.lock_timeout}")
    if settings.rate_limit < 1 or settings.rate_window_seconds < 1:
        raise ValueError("BOOKING_RATE_LIMIT and BOOKING_RATE_WINDOW must be >= 1")
    if settings.retry_delay < 0:
        raise ValueError(f"GCAL_RETRY_DELAY must be >= 0, got {settings.retry_delay}")


def load_settings() -> EngineSettings:
    """Build and validate the engine settings from the environment."""
    settings = EngineSettings()
    _validate_settings(settings)
    return settings
