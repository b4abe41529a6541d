"""Task repository interface."""

from datetime import datetime
from typing import Protocol

from homecal.core.tasks import Task


class TaskRepository(Protocol):
    """Interface for reading tasks and writing their exceptions in any backend."""

    def get_task(self, household_id: str, task_id: str) -> Task | None:
        """Fetch one task. Returns None if not found."""
        ...

    def fetch_in_range(self, household_id: str, start: datetime, end: datetime) -> list[Task]:
        """Fetch active tasks whose next occurrence or due date falls in [start, end]."""
        ...

    def fetch_recurring(self, household_id: str) -> list[Task]:
        """Fetch active tasks that carry a recurrence rule."""
        ...

    def add_skip_date(self, household_id: str, task_id: str, day_key: str) -> None:
        """Hide the occurrence on a household-local day (YYYY-MM-DD)."""
        ...

    def set_paused_until(self, household_id: str, task_id: str, until: datetime | None) -> None:
        """Pause a task until a day, or clear the pause with None."""
        ...

    def set_shift(self, household_id: str, task_id: str, day_key: str, minutes: int) -> None:
        """Move the occurrence on a household-local day by N minutes."""
        ...

    def update_next_occurrence(self, household_id: str, task_id: str, instant: datetime | None) -> None:
        """Store a recomputed next occurrence."""
        ...
