"""Pure task domain logic - no I/O dependencies."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .dates import InvalidDateError, ensure_aware, is_day_key, parse_instant
from .recurrence import Recurrence, RecurrenceError, parse_rrule

logger = logging.getLogger(__name__)


class TaskValidationError(ValueError):
    """Raised when a stored task record cannot be turned into a Task."""

    pass


class TaskType(str, Enum):
    CHORE = "chore"
    EVENT = "event"
    DEADLINE = "deadline"
    CHECKLIST = "checklist"


class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    VERIFIED = "verified"


# Statuses that show up on calendar views
ACTIVE_STATUSES = (TaskStatus.OPEN, TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED)


@dataclass
class Task:
    """A household task as placed on calendar views."""

    id: str
    title: str
    type: TaskType = TaskType.CHORE
    due_at: datetime | None = None
    next_occurrence_at: datetime | None = None
    start_at: datetime | None = None
    recurrence: Recurrence | None = None
    paused_until: datetime | None = None
    skip_dates: set[str] = field(default_factory=set)
    exception_shifts: dict[str, int] = field(default_factory=dict)
    prep_window_hours: float = 0
    priority: int | None = None
    child_ids: list[str] = field(default_factory=list)
    context: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.OPEN

    @property
    def effective_instant(self) -> datetime | None:
        """The instant that places this task on a calendar, if any."""
        instant = self.next_occurrence_at or self.due_at
        return ensure_aware(instant) if instant else None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def sort_priority(self) -> int:
        """Priority for ordering; missing priority counts as 0."""
        return self.priority if self.priority is not None else 0

    @classmethod
    def from_doc(cls, doc_id: str, data: dict) -> "Task":
        """
        Create Task from a stored document (camelCase fields).

        This is the ingestion boundary: malformed dates, unknown types and
        unsupported recurrence rules raise TaskValidationError.
        """
        try:
            task_type = TaskType(data.get("type") or TaskType.CHORE.value)
        except ValueError as e:
            raise TaskValidationError(f"Task {doc_id}: unknown type {data.get('type')!r}") from e
        try:
            status = TaskStatus(data.get("status") or TaskStatus.OPEN.value)
        except ValueError as e:
            raise TaskValidationError(f"Task {doc_id}: unknown status {data.get('status')!r}") from e

        try:
            due_at = parse_instant(data.get("dueAt"))
            next_at = parse_instant(data.get("nextOccurrenceAt"))
            start_at = parse_instant(data.get("startAt"))
            paused_until = parse_instant(data.get("pausedUntil"))
        except InvalidDateError as e:
            raise TaskValidationError(f"Task {doc_id}: {e}") from e

        try:
            recurrence = parse_rrule(data.get("rrule"))
        except RecurrenceError as e:
            raise TaskValidationError(f"Task {doc_id}: {e}") from e

        skip_dates = data.get("skipDates") or []
        if not isinstance(skip_dates, (list, tuple, set)):
            raise TaskValidationError(f"Task {doc_id}: skipDates must be a list")
        bad = [s for s in skip_dates if not is_day_key(s)]
        if bad:
            raise TaskValidationError(f"Task {doc_id}: invalid skip dates {bad}")

        shifts = data.get("exceptionShifts") or {}
        if not isinstance(shifts, dict):
            raise TaskValidationError(f"Task {doc_id}: exceptionShifts must be a mapping")
        exception_shifts = {}
        for key, minutes in shifts.items():
            if not is_day_key(key):
                raise TaskValidationError(f"Task {doc_id}: invalid shift date {key!r}")
            if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
                raise TaskValidationError(f"Task {doc_id}: shift for {key} is not a number")
            exception_shifts[key] = int(minutes)

        priority = data.get("priority")
        if priority is not None and (isinstance(priority, bool) or not isinstance(priority, int)):
            raise TaskValidationError(f"Task {doc_id}: priority must be an integer")

        prep = data.get("prepWindowHours") or 0
        if isinstance(prep, bool) or not isinstance(prep, (int, float)) or prep < 0:
            raise TaskValidationError(f"Task {doc_id}: prepWindowHours must be a non-negative number")

        return cls(
            id=doc_id,
            title=data.get("title") or doc_id,
            type=task_type,
            due_at=due_at,
            next_occurrence_at=next_at,
            start_at=start_at,
            recurrence=recurrence,
            paused_until=paused_until,
            skip_dates=set(skip_dates),
            exception_shifts=exception_shifts,
            prep_window_hours=prep,
            priority=priority,
            child_ids=list(dict.fromkeys(str(c) for c in data.get("childIds") or [])),
            context=list(dict.fromkeys(str(c) for c in data.get("context") or [])),
            status=status,
        )

    def to_doc(self) -> dict:
        """Serialize to the stored document shape (without the id)."""

        def _iso(dt: datetime | None) -> str | None:
            return ensure_aware(dt).isoformat() if dt else None

        return {
            "title": self.title,
            "type": self.type.value,
            "status": self.status.value,
            "dueAt": _iso(self.due_at),
            "nextOccurrenceAt": _iso(self.next_occurrence_at),
            "startAt": _iso(self.start_at),
            "rrule": self.recurrence.to_rrule() if self.recurrence else None,
            "pausedUntil": _iso(self.paused_until),
            "skipDates": sorted(self.skip_dates),
            "exceptionShifts": dict(self.exception_shifts),
            "prepWindowHours": self.prep_window_hours,
            "priority": self.priority,
            "childIds": list(self.child_ids),
            "context": list(self.context),
        }


def load_tasks(docs: dict[str, dict], strict: bool = False) -> list[Task]:
    """
    Build Tasks from {id: document} records.

    Invalid records are dropped (or raise, with strict=True).
    """
    tasks = []
    for doc_id, data in docs.items():
        try:
            tasks.append(Task.from_doc(doc_id, data))
        except TaskValidationError as e:
            if strict:
                raise
            logger.warning(f"Skipping invalid task record: {e}")
    return tasks


def filter_active(tasks: list[Task]) -> list[Task]:
    """Tasks whose status still puts them on the calendar."""
    return [t for t in tasks if t.is_active]
