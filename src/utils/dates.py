from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from src.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def schedule_timezone() -> ZoneInfo:
    return ZoneInfo(settings.SCHEDULE_TIMEZONE)


def current_month_year(now: datetime | None = None) -> str:
    """Budget month key (YYYY-MM) in the schedule timezone."""
    now = ensure_utc(now) or utcnow()
    return now.astimezone(schedule_timezone()).strftime("%Y-%m")
