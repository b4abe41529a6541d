"""Occurrence resolution - where a task shows up, and whether it shows at all.

Pure functions, no I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from .dates import format_day, local_day
from .tasks import Task


@dataclass(frozen=True)
class EffectiveOccurrence:
    """Display placement of a task for one query."""

    display_instant: datetime | None
    visible: bool


def resolve_occurrence(task: Task, window_start: datetime, tz: ZoneInfo) -> EffectiveOccurrence:
    """
    Resolve a task's display instant and visibility.

    Skip dates and shifts are keyed by the household-local day of the
    effective instant. Pausing is day-granular: the task stays hidden while
    the query window starts on a local day before the pause-until day.
    """
    base = task.effective_instant
    if base is None:
        return EffectiveOccurrence(display_instant=None, visible=False)

    day_key = format_day(base, tz)
    display = base
    shift = task.exception_shifts.get(day_key)
    if shift:
        display = base + timedelta(minutes=shift)

    if day_key in task.skip_dates:
        return EffectiveOccurrence(display_instant=display, visible=False)

    if task.paused_until is not None:
        if local_day(window_start, tz) < local_day(task.paused_until, tz):
            return EffectiveOccurrence(display_instant=display, visible=False)

    return EffectiveOccurrence(display_instant=display, visible=True)


def visible_tasks(tasks: list[Task], window_start: datetime, tz: ZoneInfo) -> list[Task]:
    """Tasks that resolve as visible, in input order."""
    return [t for t in tasks if resolve_occurrence(t, window_start, tz).visible]
