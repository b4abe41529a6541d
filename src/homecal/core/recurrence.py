"""Recurrence rules and next-occurrence computation - no I/O dependencies.

Only one recurrence kind exists: a yearly anniversary (used for birthdays),
stored as FREQ=YEARLY;BYMONTH=m;BYMONTHDAY=d.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from .dates import ensure_aware, format_day, local_day, next_day_start, start_of_day, to_local

if TYPE_CHECKING:
    from .tasks import Task

MAX_CANDIDATES = 50


class RecurrenceError(ValueError):
    """Raised for recurrence rules this package does not support."""

    pass


@dataclass(frozen=True)
class YearlyAnniversary:
    """Occurs every year on the same month and day."""

    month: int
    day: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise RecurrenceError(f"Invalid anniversary month: {self.month}")
        if not 1 <= self.day <= 31:
            raise RecurrenceError(f"Invalid anniversary day: {self.day}")

    def occurs_in(self, year: int) -> date:
        """
        The anniversary date in a given year.

        Days past the end of the month are clamped to its last day, so a
        Feb 29 anchor falls on Feb 28 in non-leap years.
        """
        last = calendar.monthrange(year, self.month)[1]
        return date(year, self.month, min(self.day, last))

    def to_rrule(self) -> str:
        return f"FREQ=YEARLY;BYMONTH={self.month};BYMONTHDAY={self.day}"

    @classmethod
    def from_day(cls, day: date) -> "YearlyAnniversary":
        return cls(month=day.month, day=day.day)


Recurrence = YearlyAnniversary


def parse_rrule(text: str | None) -> Recurrence | None:
    """
    Parse a stored rule string into a recurrence.

    Empty input means no recurrence. Only yearly month/day rules are
    supported; anything else raises RecurrenceError.
    """
    if not text or not text.strip():
        return None
    body = text.strip()
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:"):]

    parts: dict[str, str] = {}
    for piece in body.split(";"):
        piece = piece.strip()
        if not piece:
            continue
        key, sep, value = piece.partition("=")
        if not sep:
            raise RecurrenceError(f"Malformed rule part: {piece!r}")
        parts[key.strip().upper()] = value.strip()

    if parts.get("FREQ", "").upper() != "YEARLY":
        raise RecurrenceError(f"Unsupported recurrence: {text!r}")
    unsupported = set(parts) - {"FREQ", "BYMONTH", "BYMONTHDAY", "INTERVAL"}
    if unsupported:
        raise RecurrenceError(f"Unsupported rule parts: {', '.join(sorted(unsupported))}")
    if parts.get("INTERVAL", "1") != "1":
        raise RecurrenceError(f"Unsupported interval: {parts['INTERVAL']}")

    try:
        month = int(parts["BYMONTH"])
        day = int(parts["BYMONTHDAY"])
    except KeyError as e:
        raise RecurrenceError(f"Yearly rule needs BYMONTH and BYMONTHDAY: {text!r}") from e
    except ValueError as e:
        raise RecurrenceError(f"Non-numeric month/day in rule: {text!r}") from e
    return YearlyAnniversary(month=month, day=day)


def next_anniversary(anchor: YearlyAnniversary, from_day: date) -> date:
    """
    Next anniversary on or after from_day.

    Candidate in from_day's year; if it is already past, the next year's.
    """
    if isinstance(from_day, datetime):
        from_day = from_day.date()
    candidate = anchor.occurs_in(from_day.year)
    if candidate < from_day:
        candidate = anchor.occurs_in(from_day.year + 1)
    return candidate


def anniversary_instant(
    anchor: YearlyAnniversary,
    from_dt: datetime,
    tz: ZoneInfo,
    at: time | None = None,
) -> datetime:
    """
    Next anniversary as a local instant at time `at` (midnight if unset).

    The comparison with from_dt is by local day: an anniversary falling on
    from_dt's own day is still the next one, whatever the time of day.
    """
    day = next_anniversary(anchor, local_day(from_dt, tz))
    return datetime.combine(day, at or time(0, 0), tzinfo=tz)


@dataclass(frozen=True)
class NextOccurrence:
    """Result of advancing a task's schedule."""

    occurrence_at: datetime | None  # the occurrence itself
    next_occurrence_at: datetime | None  # display time, after the prep window


def _candidate_after(task: "Task", cursor: datetime, tz: ZoneInfo) -> datetime | None:
    base = task.start_at or task.due_at
    if task.recurrence is not None:
        at = to_local(base, tz).time().replace(tzinfo=None) if base else None
        return anniversary_instant(task.recurrence, cursor, tz, at)
    if base is None:
        return None
    base = ensure_aware(base)
    return base if base >= cursor else None


def compute_next_occurrence(task: "Task", tz: ZoneInfo, now: datetime) -> NextOccurrence:
    """
    Next occurrence of a task at or after `now`, honouring its exceptions.

    Candidates before the pause day and on skipped days are passed over; the
    first usable one gets its per-day shift applied. The display time is
    then moved earlier by the prep window.

    A paused task resumes at the start of its pause day, so an occurrence
    falling on that day is kept, matching how views treat pausedUntil.
    """
    cursor = ensure_aware(now)
    occurrence = None

    for _ in range(MAX_CANDIDATES):
        candidate = _candidate_after(task, cursor, tz)
        if candidate is None:
            break

        if task.paused_until is not None:
            pause_day = local_day(task.paused_until, tz)
            if local_day(candidate, tz) < pause_day:
                cursor = start_of_day(pause_day, tz)
                continue

        day_key = format_day(candidate, tz)
        if day_key in task.skip_dates:
            cursor = next_day_start(candidate, tz)
            continue

        occurrence = candidate
        shift = task.exception_shifts.get(day_key)
        if shift:
            occurrence = occurrence + timedelta(minutes=shift)
        break

    if occurrence is None:
        return NextOccurrence(occurrence_at=None, next_occurrence_at=None)

    display = occurrence
    if task.prep_window_hours and task.prep_window_hours > 0:
        display = occurrence - timedelta(hours=task.prep_window_hours)
    return NextOccurrence(occurrence_at=occurrence, next_occurrence_at=display)


def advance_recurring(
    tasks: list["Task"],
    tz: ZoneInfo,
    now: datetime,
) -> list[tuple["Task", datetime | None]]:
    """
    Recurring tasks whose stored next occurrence is out of date.

    Returns (task, new_next_occurrence_at) pairs for the tasks that need a
    write; tasks already pointing at the right instant are left out.
    """
    changed = []
    for task in tasks:
        if task.recurrence is None:
            continue
        result = compute_next_occurrence(task, tz, now)
        current = ensure_aware(task.next_occurrence_at) if task.next_occurrence_at else None
        if current != result.next_occurrence_at:
            changed.append((task, result.next_occurrence_at))
    return changed
