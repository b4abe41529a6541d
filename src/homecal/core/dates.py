"""Date, time and timezone helpers - no I/O dependencies.

Everything that turns user or document-store input into datetimes goes
through here, so malformed values are rejected before they reach the
occurrence logic.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DAY_KEY_FORMAT = "%Y-%m-%d"

_DAY_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLASH_DATE_PATTERN = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


class InvalidDateError(ValueError):
    """Raised when a date, time or timezone string cannot be parsed."""

    pass


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA timezone name. Unset means UTC."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidDateError(f"Unknown timezone: {name!r}") from e


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    return ensure_aware(dt).astimezone(tz)


def local_day(dt: datetime, tz: ZoneInfo) -> date:
    """Calendar day of an instant in the given timezone."""
    return to_local(dt, tz).date()


def format_day(dt: datetime, tz: ZoneInfo) -> str:
    """Day key (YYYY-MM-DD) of an instant in the given timezone."""
    return local_day(dt, tz).strftime(DAY_KEY_FORMAT)


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=tz)


def end_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def next_day_start(dt: datetime, tz: ZoneInfo) -> datetime:
    """Start of the local day after the one containing dt."""
    return start_of_day(local_day(dt, tz) + timedelta(days=1), tz)


def is_day_key(value: str) -> bool:
    """Check that a string is a real YYYY-MM-DD date."""
    if not isinstance(value, str) or not _DAY_KEY_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_day(value: str) -> date:
    """
    Parse a user-entered date.

    Accepts YYYY-MM-DD and YYYY/M/D. Anything else raises InvalidDateError.
    """
    value = (value or "").strip()
    if is_day_key(value):
        return date.fromisoformat(value)
    m = _SLASH_DATE_PATTERN.match(value)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError as e:
            raise InvalidDateError(f"Invalid date: {value!r}") from e
    raise InvalidDateError(f"Invalid date: {value!r}")


def parse_time(value: str) -> time:
    """Parse HH:MM or H:MM (24h)."""
    m = _TIME_PATTERN.match((value or "").strip())
    if not m:
        raise InvalidDateError(f"Invalid time: {value!r}")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise InvalidDateError(f"Invalid time: {value!r}")
    return time(hour, minute)


def parse_instant(value) -> datetime | None:
    """
    Parse an instant coming from a stored record.

    Accepts None/"" (no value), aware or naive datetimes, ISO 8601 strings
    (a trailing Z is UTC) and epoch seconds. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, bool):
        raise InvalidDateError(f"Invalid instant: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time(0, 0), tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_aware(datetime.fromisoformat(text))
        except ValueError as e:
            raise InvalidDateError(f"Invalid instant: {value!r}") from e
    raise InvalidDateError(f"Invalid instant: {value!r}")


def combine_date_time(
    date_text: str,
    time_text: str | None,
    tz: ZoneInfo,
    all_day: bool = False,
) -> datetime:
    """
    Build a local instant from user-entered date and time strings.

    All-day values land at local midnight; a missing time defaults to 09:00.
    """
    day = parse_day(date_text)
    if all_day:
        return start_of_day(day, tz)
    at = parse_time(time_text) if time_text else time(9, 0)
    return datetime.combine(day, at, tzinfo=tz)
