"""Local JSON document store adapter."""

import json
import logging
from datetime import datetime
from pathlib import Path

from homecal.core.dates import ensure_aware
from homecal.core.household import Child, Household
from homecal.core.tasks import Task, TaskValidationError
from homecal.errors import RepositoryError

logger = logging.getLogger(__name__)


class JsonDocumentStore:
    """
    File-based document store.

    Implements TaskRepository and HouseholdRepository protocols on top of a
    single JSON file shaped like the hosted store:

        {"households": {hid: {"name", "timezone", "children": {id: {...}},
                              "tasks": {id: {...}}}}}
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _load(self) -> dict:
        if not self.path.exists():
            raise RepositoryError(f"Data file not found: {self.path}")
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise RepositoryError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data.get("households"), dict):
            raise RepositoryError(f"{self.path} has no 'households' mapping")
        return data

    def _save(self, data: dict) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str))
        tmp.replace(self.path)

    def _household_doc(self, data: dict, household_id: str) -> dict:
        doc = data["households"].get(household_id)
        if doc is None:
            raise RepositoryError(f"Unknown household: {household_id}")
        return doc

    def _tasks(self, household_id: str) -> list[Task]:
        doc = self._household_doc(self._load(), household_id)
        tasks = []
        for task_id, raw in (doc.get("tasks") or {}).items():
            try:
                tasks.append(Task.from_doc(task_id, raw))
            except TaskValidationError as e:
                logger.warning(f"Skipping task {task_id} in {household_id}: {e}")
        return tasks

    def _mutate_task(self, household_id: str, task_id: str, change) -> None:
        data = self._load()
        tasks = self._household_doc(data, household_id).get("tasks") or {}
        if task_id not in tasks:
            raise RepositoryError(f"Unknown task {task_id} in {household_id}")
        change(tasks[task_id])
        tasks[task_id]["updatedAt"] = datetime.now().astimezone().isoformat()
        self._save(data)

    def get_task(self, household_id: str, task_id: str) -> Task | None:
        doc = self._household_doc(self._load(), household_id)
        raw = (doc.get("tasks") or {}).get(task_id)
        if raw is None:
            return None
        try:
            return Task.from_doc(task_id, raw)
        except TaskValidationError as e:
            raise RepositoryError(str(e)) from e

    def fetch_in_range(self, household_id: str, start: datetime, end: datetime) -> list[Task]:
        """Active tasks whose nextOccurrenceAt or dueAt falls in [start, end], by effective instant."""
        start, end = ensure_aware(start), ensure_aware(end)

        def in_range(dt: datetime | None) -> bool:
            return dt is not None and start <= dt <= end

        matches = [
            t for t in self._tasks(household_id)
            if t.is_active and (in_range(t.next_occurrence_at) or in_range(t.due_at))
        ]
        return sorted(matches, key=lambda t: t.effective_instant.timestamp() if t.effective_instant else float("inf"))

    def fetch_recurring(self, household_id: str) -> list[Task]:
        return [t for t in self._tasks(household_id) if t.is_active and t.recurrence is not None]

    def get_household(self, household_id: str) -> Household | None:
        doc = self._load()["households"].get(household_id)
        if doc is None:
            return None
        return Household.from_doc(household_id, doc)

    def list_children(self, household_id: str) -> list[Child]:
        doc = self._household_doc(self._load(), household_id)
        return [Child.from_doc(cid, raw) for cid, raw in (doc.get("children") or {}).items()]

    def add_skip_date(self, household_id: str, task_id: str, day_key: str) -> None:
        def change(raw: dict) -> None:
            skips = list(raw.get("skipDates") or [])
            if day_key not in skips:
                skips.append(day_key)
            raw["skipDates"] = skips

        self._mutate_task(household_id, task_id, change)

    def set_paused_until(self, household_id: str, task_id: str, until: datetime | None) -> None:
        def change(raw: dict) -> None:
            raw["pausedUntil"] = ensure_aware(until).isoformat() if until else None

        self._mutate_task(household_id, task_id, change)

    def set_shift(self, household_id: str, task_id: str, day_key: str, minutes: int) -> None:
        def change(raw: dict) -> None:
            shifts = dict(raw.get("exceptionShifts") or {})
            shifts[day_key] = int(minutes)
            raw["exceptionShifts"] = shifts

        self._mutate_task(household_id, task_id, change)

    def update_next_occurrence(self, household_id: str, task_id: str, instant: datetime | None) -> None:
        def change(raw: dict) -> None:
            raw["nextOccurrenceAt"] = ensure_aware(instant).isoformat() if instant else None

        self._mutate_task(household_id, task_id, change)
