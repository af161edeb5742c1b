"""Time helpers. All timestamps are stored as naive UTC."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime | str | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def hours_between(start: datetime | str, end: datetime | str) -> float:
    """Positive when ``end`` is after ``start``."""
    return (as_naive_utc(end) - as_naive_utc(start)).total_seconds() / 3600


def minutes_between(start: datetime | str, end: datetime | str) -> float:
    return hours_between(start, end) * 60


def is_older_than_days(value: datetime | str, days: float, now: datetime | None = None) -> bool:
    return hours_between(value, now or utcnow()) / 24 > days
