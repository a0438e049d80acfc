"""Time helpers for consistent UTC timestamps across services."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC datetime with timezone attached."""

    return datetime.now(timezone.utc)


def iso_millis(value: datetime) -> str:
    """Format as ISO-8601 with millisecond precision and a Z suffix."""

    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
