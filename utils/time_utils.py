"""Time and timezone utilities shared by the reminder scheduler and the notification worker."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from logging_config import get_logger

logger = get_logger("time_utils")

UTC = timezone.utc


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to timezone-aware UTC. Naive values are taken to be UTC already
    (that is how MongoDB hands them back)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to UTC for empty or unknown names."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        return ZoneInfo("UTC")


def parse_hhmm(value: str) -> Tuple[int, int]:
    """Parse an "HH:mm" wall-clock string into (hours, minutes)."""
    parsed = time.fromisoformat(value)
    return parsed.hour, parsed.minute


def hhmm_to_minutes(value: str) -> int:
    hours, minutes = parse_hhmm(value)
    return hours * 60 + minutes


def resolve_wall_time(day: date, wall_time: str, tz: str) -> datetime:
    """Return the UTC instant at which the clock in `tz` reads `wall_time` on `day`.

    The first guess reads the wall time as if it were UTC. Formatting that guess in the
    target zone shows how far off it is; comparing full local datetimes (not just the
    hour) folds any calendar-day drift into the same correction.

    One pass is usually enough. When the guess and the answer sit on opposite sides of a
    DST change (e.g. 01:30 in Berlin on the night clocks jump), the first correction uses
    the wrong offset, so the result is checked once more and re-corrected if that lands
    exactly on the wanted wall time. Wall times inside a DST gap do not exist; those keep
    the first-pass result.
    """
    hours, minutes = parse_hhmm(wall_time)
    wanted = datetime(day.year, day.month, day.day, hours, minutes)
    zone = get_zone(tz)

    def correct(guess: datetime) -> datetime:
        observed = guess.astimezone(zone).replace(tzinfo=None, second=0, microsecond=0)
        return guess + (wanted - observed)

    first = correct(wanted.replace(tzinfo=UTC))
    second = correct(first)
    if second.astimezone(zone).replace(tzinfo=None, second=0, microsecond=0) == wanted:
        return second
    return first


def local_now(now: datetime, tz: str) -> datetime:
    return as_utc(now).astimezone(get_zone(tz))


def local_date_string(now: datetime, tz: str) -> str:
    """Calendar date (YYYY-MM-DD) that `now` falls on in `tz`."""
    return local_now(now, tz).date().isoformat()


def minutes_in_timezone(now: datetime, tz: str) -> int:
    """Minutes since local midnight in `tz`."""
    local = local_now(now, tz)
    return local.hour * 60 + local.minute


def local_day_bounds_utc(now: datetime, tz: str) -> Tuple[datetime, datetime]:
    """UTC-midnight range [start, end) for the user's local calendar date.

    Due dates are stored as midnight UTC of their calendar date, so "due today" for a user
    means the UTC day whose date string matches the user's local date, not UTC's own today.
    """
    start = datetime.fromisoformat(local_date_string(now, tz)).replace(tzinfo=UTC)
    return start, start + timedelta(days=1)


def is_within_quiet_hours(
    now: datetime, enabled: bool, quiet_start: str, quiet_end: str, tz: str = "UTC"
) -> bool:
    """Check if `now` falls inside the quiet-hours window in the user's timezone.

    The window includes its start and excludes its end. A start later than the end
    wraps past midnight (e.g. 22:00 to 08:00).
    """
    if not enabled:
        return False

    current = minutes_in_timezone(now, tz)
    start = hhmm_to_minutes(quiet_start)
    end = hhmm_to_minutes(quiet_end)

    if start > end:
        return current >= start or current < end
    return start <= current < end
