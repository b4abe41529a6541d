"""Functional core - pure calendar logic with no I/O."""

from .tasks import Task, TaskType, TaskStatus, TaskValidationError
from .occurrence import EffectiveOccurrence, resolve_occurrence
from .recurrence import YearlyAnniversary, RecurrenceError, compute_next_occurrence, next_anniversary
from .calendar import DateWindow, View, materialize, flatten
from .timeline import TimeSlot, Timeline, build_timeline, find_free_slots
from .filters import FilterOptions, FilterResult, PrioritySort, apply_filters
from .household import Household, Child, NamedRange

__all__ = [
    # Tasks
    "Task",
    "TaskType",
    "TaskStatus",
    "TaskValidationError",
    # Occurrences
    "EffectiveOccurrence",
    "resolve_occurrence",
    # Recurrence
    "YearlyAnniversary",
    "RecurrenceError",
    "compute_next_occurrence",
    "next_anniversary",
    # Calendar
    "DateWindow",
    "View",
    "materialize",
    "flatten",
    # Timeline
    "TimeSlot",
    "Timeline",
    "build_timeline",
    "find_free_slots",
    # Filters
    "FilterOptions",
    "FilterResult",
    "PrioritySort",
    "apply_filters",
    # Household
    "Household",
    "Child",
    "NamedRange",
]
