from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from event_bot.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    return datetime.now(ZoneInfo(settings.TIMEZONE))


def to_utc(value: datetime) -> datetime:
    """Naive input is wall-clock time in the configured timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(settings.TIMEZONE))
    return value.astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands stored values back without tzinfo; they are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def today_bounds_utc() -> tuple[datetime, datetime]:
    """Return UTC [start, end) of the current day in the configured timezone."""
    start_local = now_local().replace(hour=0, minute=0, second=0, microsecond=0)
    end_local = start_local + timedelta(days=1)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def format_datetime(value: datetime) -> str:
    return as_utc(value).astimezone(ZoneInfo(settings.TIMEZONE)).strftime("%d.%m.%Y %H:%M")
