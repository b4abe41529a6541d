"""Single-day timeline: busy intervals and free slots - no I/O dependencies."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from .dates import ensure_aware, local_day, start_of_day
from .occurrence import resolve_occurrence
from .tasks import Task

DEFAULT_INTERVAL_MINUTES = 30
DISPLAY_START_HOUR = 6
DISPLAY_END_HOUR = 22


@dataclass
class TimeSlot:
    """Half-open interval [start, end) of aware datetimes."""

    start: datetime
    end: datetime

    def duration_minutes(self) -> int:
        return (self.end - self.start) // timedelta(minutes=1)

    def format(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M} ({self.duration_minutes()} min)"

    def contains(self, dt: datetime) -> bool:
        return self.start <= dt < self.end

    def overlaps(self, other: "TimeSlot") -> bool:
        return max(self.start, other.start) < min(self.end, other.end)


@dataclass
class Timeline:
    """Busy and free intervals for one day."""

    day: date
    busy: list[TimeSlot]
    free: list[TimeSlot]


def _task_interval(task: Task, day: date, tz: ZoneInfo, default: timedelta) -> TimeSlot | None:
    start_at = ensure_aware(task.start_at) if task.start_at else None
    due_at = ensure_aware(task.due_at) if task.due_at else None
    next_at = ensure_aware(task.next_occurrence_at) if task.next_occurrence_at else None

    if start_at and due_at and local_day(start_at, tz) == day and local_day(due_at, tz) == day:
        return TimeSlot(start=start_at, end=max(start_at, due_at))
    if due_at and local_day(due_at, tz) == day:
        return TimeSlot(start=due_at - default, end=due_at)
    if next_at and local_day(next_at, tz) == day:
        return TimeSlot(start=next_at, end=next_at + default)
    return None


def busy_intervals(
    tasks: list[Task],
    day: date,
    tz: ZoneInfo,
    default_minutes: int = DEFAULT_INTERVAL_MINUTES,
) -> list[TimeSlot]:
    """
    Busy intervals contributed by visible tasks on a local day.

    start_at..due_at when both fall on the day; otherwise a default-length
    interval ending at due_at or starting at next_occurrence_at. Shifted
    occurrences move their interval along.
    """
    default = timedelta(minutes=default_minutes)
    window_start = start_of_day(day, tz)
    intervals = []
    for task in tasks:
        occ = resolve_occurrence(task, window_start, tz)
        if not occ.visible:
            continue
        slot = _task_interval(task, day, tz, default)
        if slot is None:
            continue
        delta = occ.display_instant - task.effective_instant
        intervals.append(TimeSlot(start=(slot.start + delta).astimezone(tz), end=(slot.end + delta).astimezone(tz)))
    return sorted(intervals, key=lambda s: s.start)


def merge_intervals(intervals: list[TimeSlot]) -> list[TimeSlot]:
    """Union of overlapping or touching intervals, sorted by start."""
    merged: list[TimeSlot] = []
    for slot in sorted(intervals, key=lambda s: s.start):
        if merged and slot.start <= merged[-1].end:
            if slot.end > merged[-1].end:
                merged[-1] = TimeSlot(start=merged[-1].start, end=slot.end)
        else:
            merged.append(TimeSlot(start=slot.start, end=slot.end))
    return merged


def display_window(day: date, tz: ZoneInfo, display_start: int, display_end: int) -> TimeSlot:
    """The visible part of a local day; an end hour of 24 means next midnight."""
    opens = datetime.combine(day, time(display_start), tzinfo=tz)
    if display_end >= 24:
        return TimeSlot(start=opens, end=start_of_day(day + timedelta(days=1), tz))
    return TimeSlot(start=opens, end=datetime.combine(day, time(display_end), tzinfo=tz))


def find_free_slots(
    busy: list[TimeSlot],
    day: date,
    tz: ZoneInfo,
    display_start: int = DISPLAY_START_HOUR,
    display_end: int = DISPLAY_END_HOUR,
    min_duration: int = 0,
) -> list[TimeSlot]:
    """
    Gaps between busy intervals, clipped to the display window.

    Busy intervals may be unsorted and overlapping. Gaps shorter than
    min_duration minutes are dropped.
    """
    window = display_window(day, tz, display_start, display_end)
    gaps = []
    cursor = window.start
    for slot in merge_intervals(busy):
        if not slot.overlaps(window):
            continue
        if slot.start > cursor:
            gaps.append(TimeSlot(start=cursor, end=slot.start))
        cursor = max(cursor, slot.end)
    if cursor < window.end:
        gaps.append(TimeSlot(start=cursor, end=window.end))
    return [g for g in gaps if g.duration_minutes() >= min_duration]


def build_timeline(
    tasks: list[Task],
    day: date,
    tz: ZoneInfo,
    display_start: int = DISPLAY_START_HOUR,
    display_end: int = DISPLAY_END_HOUR,
) -> Timeline:
    """Merged busy intervals and free slots for one day."""
    busy = merge_intervals(busy_intervals(tasks, day, tz))
    free = find_free_slots(busy, day, tz, display_start, display_end)
    return Timeline(day=day, busy=busy, free=free)
