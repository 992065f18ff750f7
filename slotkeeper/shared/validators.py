"""Shared validation utilities"""

import re
import unicodedata
from datetime import date, datetime, time
from typing import Optional

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")

    return email


def is_valid_email(email: Optional[str]) -> bool:
    try:
        return bool(validate_email(email))
    except ValueError:
        return False


def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a strict YYYY-MM-DD string into a date.

    Returns None for anything that is not a real calendar date in that exact
    format ("2026-02-30", "2026-2-3" and "2026-02-03T00:00" are all rejected).
    """
    if not value or not DATE_PATTERN.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_time(value: Optional[str]) -> Optional[time]:
    """Parse a strict HH:MM string (hour <= 23, minute <= 59) into a time."""
    if not value or not TIME_PATTERN.match(value):
        return None
    hour, minute = (int(part) for part in value.split(":"))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def slugify(value: str) -> str:
    """Lowercase, ASCII-only, hyphen-separated slug ("Deep Clean!" -> "deep-clean")."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^\w\s-]", "", value.lower())
    return re.sub(r"[-\s_]+", "-", value).strip("-")
