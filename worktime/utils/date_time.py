from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from worktime.core.config import settings

Clock = Callable[[], datetime]

END_OF_DAY = time(23, 59, 59)


@lru_cache(maxsize=None)
def org_timezone(name: Optional[str] = None) -> ZoneInfo:
    """Organisation time zone; calendar dates and shift times are expressed in it."""
    return ZoneInfo(name or settings.TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure datetime is timezone-aware (UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:  # naive → assume UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime) -> datetime:
    return ensure_utc(dt).astimezone(org_timezone())


def local_date(dt: datetime) -> date:
    """Calendar day of an instant in the organisation time zone."""
    return to_local(dt).date()


def local_datetime(day: date, at: time) -> datetime:
    """Organisation-local wall time on a given day, as an aware UTC datetime."""
    return datetime.combine(day, at, tzinfo=org_timezone()).astimezone(timezone.utc)


def end_of_local_day(day: date) -> datetime:
    return local_datetime(day, END_OF_DAY)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, floored. Every duration in the engine goes through here."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return int(seconds // 60)


def minutes_of_day(at: time) -> int:
    return at.hour * 60 + at.minute


def wrapped_duration_minutes(start: time, end: time) -> int:
    """end - start in minutes, wrapped across midnight when end < start."""
    duration = minutes_of_day(end) - minutes_of_day(start)
    if duration < 0:
        duration += 24 * 60
    return duration


def shift_start_on(day: date, start: time, grace_minutes: int = 0) -> datetime:
    return local_datetime(day, start) + timedelta(minutes=grace_minutes)
