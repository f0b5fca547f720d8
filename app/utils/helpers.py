"""
Common utility functions and helpers.
"""
from datetime import datetime, timezone
from typing import Optional
import random
import string


ROOM_CODE_LENGTH = 6
CLAN_CODE_LENGTH = 8
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    SQLite hands back naive values even for ``DateTime(timezone=True)``
    columns; PostgreSQL hands back aware ones.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def enum_value(value):
    """Plain value of an Enum member; other values pass through."""
    return getattr(value, "value", value)


def generate_code(length: int) -> str:
    """Random uppercase alphanumeric join code."""
    rng = random.SystemRandom()
    return "".join(rng.choice(_CODE_ALPHABET) for _ in range(length))


def generate_room_code() -> str:
    return generate_code(ROOM_CODE_LENGTH)


def generate_clan_code() -> str:
    return generate_code(CLAN_CODE_LENGTH)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Default value if division fails

    Returns:
        Result of division or default
    """
    return numerator / denominator if denominator != 0 else default


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
