"""Helpers shared by the entity schemas."""
import re
from datetime import UTC, datetime

# C0 and C1 control characters, including DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
# Same, but tab, newline and carriage return survive in multi-line text
_CONTROL_CHARS_MULTILINE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def sanitize_text(value: str, multiline: bool = False) -> str:
    """Trim whitespace and remove control characters."""
    pattern = _CONTROL_CHARS_MULTILINE if multiline else _CONTROL_CHARS
    return pattern.sub("", value.strip())


def require_non_empty(value: str, field: str, multiline: bool = False) -> str:
    """Sanitize and reject values that are empty afterwards."""
    cleaned = sanitize_text(value, multiline=multiline)
    if not cleaned:
        raise ValueError(f"{field} cannot be empty after sanitization")
    return cleaned


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes.

    SQLite and older JSON files hand back naive timestamps; everything is written
    in UTC, so naive values are interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
