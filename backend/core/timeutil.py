"""Time helpers. All persisted timestamps are naive UTC."""

from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime | date | str) -> datetime:
    """
    Normalize a datetime, date or ISO-8601 string to naive UTC.

    Raises ValueError when a string cannot be parsed.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    raise ValueError(f"Unsupported date value: {value!r}")


def format_display_date(value: datetime) -> str:
    """Render as e.g. 'Oct 19, 2026'."""
    return f"{value:%b} {value.day}, {value.year}"
