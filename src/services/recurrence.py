"""
Calendar arithmetic for scheduled top-ups.

Wall-clock fields (time of day, weekday, day of month) are read in the
schedule timezone; every returned timestamp is UTC.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from src.core.constants import ScheduleType
from src.utils.dates import ensure_utc, schedule_timezone

logger = logging.getLogger(__name__)


def js_weekday(day: date) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def _at(day: date, time_of_day: time, tz: tzinfo) -> datetime:
    return datetime.combine(day, time_of_day.replace(tzinfo=None), tzinfo=tz)


def _add_month(day: date) -> date:
    if day.month == 12:
        return day.replace(year=day.year + 1, month=1)
    return day.replace(month=day.month + 1)


def next_execution(
    schedule_type: str,
    now: datetime,
    scheduled_at: Optional[datetime] = None,
    recurring_time: Optional[time] = None,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """
    Return the first due time strictly after ``now``.

    ``None`` means the schedule has nothing left to run (a one-time
    schedule whose timestamp is not in the future).
    """
    kind = ScheduleType(schedule_type)
    now = ensure_utc(now)
    tz = tz or schedule_timezone()

    if kind == ScheduleType.ONE_TIME:
        if scheduled_at is None:
            raise ValueError("scheduled_at is required for one_time schedules")
        scheduled_at = ensure_utc(scheduled_at)
        return scheduled_at if scheduled_at > now else None

    if recurring_time is None:
        raise ValueError("recurring_time is required for recurring schedules")

    local_now = now.astimezone(tz)
    today = local_now.date()

    if kind == ScheduleType.DAILY:
        candidate = _at(today, recurring_time, tz)
        if candidate <= local_now:
            candidate = _at(today + timedelta(days=1), recurring_time, tz)

    elif kind == ScheduleType.WEEKLY:
        if day_of_week is None or not 0 <= day_of_week <= 6:
            raise ValueError("day_of_week (0-6) is required for weekly schedules")
        days_ahead = (day_of_week - js_weekday(today)) % 7
        candidate = _at(today + timedelta(days=days_ahead), recurring_time, tz)
        if candidate <= local_now:
            candidate = _at(today + timedelta(days=days_ahead + 7), recurring_time, tz)

    else:
        if day_of_month is None or not 1 <= day_of_month <= 28:
            raise ValueError("day_of_month (1-28) is required for monthly schedules")
        this_month = today.replace(day=day_of_month)
        candidate = _at(this_month, recurring_time, tz)
        if candidate <= local_now:
            candidate = _at(_add_month(this_month), recurring_time, tz)

    return candidate.astimezone(timezone.utc)


def advance_occurrence(
    schedule_type: str,
    previous_due: Optional[datetime],
    now: datetime,
    recurring_time: Optional[time] = None,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    tz: Optional[tzinfo] = None,
) -> tuple[Optional[datetime], int]:
    """
    Next due time after an attempted occurrence.

    Steps forward from the occurrence that was just attempted, then skips
    every occurrence that has already elapsed by ``now`` so a late run fires
    once rather than catching up. Returns ``(next_due, skipped_count)``.
    """
    if ScheduleType(schedule_type) == ScheduleType.ONE_TIME:
        return None, 0

    now = ensure_utc(now)
    baseline = ensure_utc(previous_due) or now

    kwargs = dict(
        recurring_time=recurring_time,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        tz=tz,
    )

    next_due = next_execution(schedule_type, now=baseline, **kwargs)
    skipped = 0
    while next_due <= now:
        skipped += 1
        next_due = next_execution(schedule_type, now=next_due, **kwargs)

    if skipped:
        logger.info(f"Skipped {skipped} elapsed {schedule_type} occurrence(s) after {baseline.isoformat()}")

    return next_due, skipped
