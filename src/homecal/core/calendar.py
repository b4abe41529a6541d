"""Pure calendar domain logic - no I/O dependencies.

View windows and the range materializer that buckets tasks per local day.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from .dates import end_of_day, format_day, local_day, start_of_day
from .occurrence import resolve_occurrence
from .tasks import Task

DEFAULT_AGENDA_DAYS = 14
AGENDA_STEP_DAYS = 14
GRID_WEEKS = 6


class View(str, Enum):
    AGENDA = "agenda"
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"
    TIMELINE = "timeline"


@dataclass(frozen=True)
class DateWindow:
    """An inclusive [start, end] query window in a household's timezone."""

    start: datetime
    end: datetime
    tz: ZoneInfo

    @property
    def first_day(self) -> date:
        return local_day(self.start, self.tz)

    @property
    def last_day(self) -> date:
        return local_day(self.end, self.tz)

    def days(self) -> list[date]:
        """Every local day the window touches."""
        first, last = self.first_day, self.last_day
        return [first + timedelta(days=i) for i in range((last - first).days + 1)]

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    def format(self) -> str:
        return f"{self.first_day.isoformat()} - {self.last_day.isoformat()}"


@dataclass(frozen=True)
class GridDay:
    """One cell of a month grid."""

    day: date
    in_month: bool


def _span(first: date, last: date, tz: ZoneInfo) -> DateWindow:
    return DateWindow(start=start_of_day(first, tz), end=end_of_day(last, tz), tz=tz)


def agenda_window(start_day: date, tz: ZoneInfo, days: int = DEFAULT_AGENDA_DAYS) -> DateWindow:
    """Rolling window of N days from start_day (at least one)."""
    days = max(1, days)
    return _span(start_day, start_day + timedelta(days=days - 1), tz)


def extend_agenda(days: int, step: int = AGENDA_STEP_DAYS) -> int:
    """Agenda length after the reader scrolls to the end."""
    return max(1, days) + step


def week_start(anchor: date) -> date:
    """Monday on or before anchor."""
    return anchor - timedelta(days=anchor.weekday())


def week_window(anchor: date, tz: ZoneInfo) -> DateWindow:
    """Monday-anchored 7-day window containing anchor."""
    first = week_start(anchor)
    return _span(first, first + timedelta(days=6), tz)


def _month_bounds(anchor: date) -> tuple[date, date]:
    first = anchor.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return first, next_first - timedelta(days=1)


def month_window(anchor: date, tz: ZoneInfo) -> DateWindow:
    """The calendar month containing anchor."""
    first, last = _month_bounds(anchor)
    return _span(first, last, tz)


def month_grid(anchor: date) -> list[GridDay]:
    """
    Fixed 6-week (42-cell) grid for the month containing anchor.

    Starts on the Monday on or before the 1st; days outside the month are
    flagged so they can be rendered de-emphasized.
    """
    first, _ = _month_bounds(anchor)
    grid_start = week_start(first)
    cells = []
    for i in range(GRID_WEEKS * 7):
        d = grid_start + timedelta(days=i)
        cells.append(GridDay(day=d, in_month=(d.year, d.month) == (first.year, first.month)))
    return cells


def month_grid_window(anchor: date, tz: ZoneInfo) -> DateWindow:
    """Window spanning the whole month grid, padding days included."""
    cells = month_grid(anchor)
    return _span(cells[0].day, cells[-1].day, tz)


def custom_window(start: date, end: date, tz: ZoneInfo) -> DateWindow:
    """User-selected range; reversed bounds are swapped."""
    if end < start:
        start, end = end, start
    return _span(start, end, tz)


def day_window(day: date, tz: ZoneInfo) -> DateWindow:
    return _span(day, day, tz)


def _add_months(d: date, months: int) -> date:
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def shift_anchor(view: View, anchor: date, direction: int, agenda_days: int = DEFAULT_AGENDA_DAYS) -> date:
    """
    Anchor of the previous (-1) or next (+1) range for a view.

    Months move to the 1st of the adjacent month, weeks by 7 days, the
    timeline by one day and everything else by the agenda length.
    """
    if view == View.MONTH:
        return _add_months(anchor, direction)
    if view == View.WEEK:
        return anchor + timedelta(days=7 * direction)
    if view == View.TIMELINE:
        return anchor + timedelta(days=direction)
    return anchor + timedelta(days=max(1, agenda_days) * direction)


def materialize(
    tasks: list[Task],
    window_start: datetime,
    window_end: datetime,
    tz: ZoneInfo,
) -> dict[str, list[Task]]:
    """
    Bucket visible tasks by household-local day.

    A task lands in the bucket of its display instant when that instant
    falls inside [window_start, window_end]. Keys are ascending; tasks keep
    their input order within a bucket.
    """
    buckets: dict[str, list[Task]] = {}
    for task in tasks:
        occ = resolve_occurrence(task, window_start, tz)
        if not occ.visible or occ.display_instant is None:
            continue
        if not window_start <= occ.display_instant <= window_end:
            continue
        buckets.setdefault(format_day(occ.display_instant, tz), []).append(task)
    return {key: buckets[key] for key in sorted(buckets)}


def materialize_window(tasks: list[Task], window: DateWindow) -> dict[str, list[Task]]:
    return materialize(tasks, window.start, window.end, window.tz)


def flatten(buckets: dict[str, list[Task]]) -> list[Task]:
    """All bucketed tasks in day order."""
    return [task for key in sorted(buckets) for task in buckets[key]]
