"""Shared workflow layer between the CLI and the scheduler.

Each load_* function fetches records through a repository, then runs the
pure core over them. Fetch failures come back as views with
available=False rather than as exceptions.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .adapters.file_preferences import FilePreferenceStore
from .adapters.firestore_rest import FirestoreAdapter
from .adapters.json_store import JsonDocumentStore
from .config import DATA_DIR, Config
from .core.calendar import (
    DateWindow,
    GridDay,
    View,
    agenda_window,
    custom_window,
    day_window,
    flatten,
    materialize_window,
    month_grid,
    month_grid_window,
    week_window,
)
from .core.dates import InvalidDateError, format_day, get_zone, start_of_day
from .core.filters import FilterOptions, TagChips, apply_filters, tag_chips
from .core.household import Child, Household, NamedRange, find_range, remove_range, upsert_range
from .core.occurrence import visible_tasks
from .core.recurrence import advance_recurring
from .core.tasks import Task
from .core.timeline import Timeline, build_timeline
from .errors import AuthenticationError, RepositoryError
from .ports import HouseholdRepository, PreferenceStore, TaskRepository

logger = logging.getLogger(__name__)

RANGES_KEY = "ranges"


def get_repository(config: Config) -> JsonDocumentStore | FirestoreAdapter:
    """Resolve the document store from config."""
    if config.data_file:
        return JsonDocumentStore(config.data_file)
    return FirestoreAdapter(config)


def get_preferences(config: Config) -> FilePreferenceStore:
    return FilePreferenceStore(DATA_DIR / "preferences")


def resolve_household(config: Config, repo: HouseholdRepository, household_id: str) -> Household:
    """
    Look up a household, falling back to the configured timezone.

    Lookup failures, including a stored timezone that does not resolve, are
    logged, not raised: views still render in the fallback zone.
    """
    try:
        household = repo.get_household(household_id)
    except (RepositoryError, AuthenticationError) as e:
        logger.warning(f"Household lookup failed for {household_id}: {e}")
        household = None
    except InvalidDateError as e:
        logger.warning(f"Household {household_id} has an invalid timezone, using {config.timezone!r}: {e}")
        household = None
    if household is None:
        return Household(id=household_id, name=household_id, timezone=config.timezone or None)
    if not household.timezone:
        household.timezone = config.timezone or None
    return household


def list_children(repo: HouseholdRepository, household_id: str) -> list[Child]:
    try:
        return repo.list_children(household_id)
    except (RepositoryError, AuthenticationError) as e:
        logger.warning(f"Listing children failed for {household_id}: {e}")
        return []


def fetch_tasks(repo: TaskRepository, household_id: str, window: DateWindow) -> list[Task] | None:
    """Fetch tasks for a window; None means no data is available."""
    try:
        return repo.fetch_in_range(household_id, window.start, window.end)
    except (RepositoryError, AuthenticationError) as e:
        logger.warning(f"Fetching tasks failed for {household_id}: {e}")
        return None


@dataclass
class CalendarView:
    """Everything a renderer needs for an agenda/week/month/custom view."""

    household: Household
    view: View
    window: DateWindow
    available: bool
    buckets: dict[str, list[Task]] = field(default_factory=dict)
    child_counts: dict[str, int] = field(default_factory=dict)
    tags: TagChips | None = None
    grid: list[GridDay] = field(default_factory=list)

    @property
    def tasks(self) -> list[Task]:
        return [t for key in self.buckets for t in self.buckets[key]]


@dataclass
class TimelineView:
    household: Household
    window: DateWindow
    available: bool
    timeline: Timeline | None = None


def view_window(
    view: View,
    anchor: date,
    household: Household,
    agenda_days: int = 14,
    custom_end: date | None = None,
) -> DateWindow:
    """Query window for a view around an anchor day."""
    tz = household.zone
    if view == View.WEEK:
        return week_window(anchor, tz)
    if view == View.MONTH:
        return month_grid_window(anchor, tz)
    if view == View.CUSTOM:
        return custom_window(anchor, custom_end or anchor, tz)
    if view == View.TIMELINE:
        return day_window(anchor, tz)
    return agenda_window(anchor, tz, agenda_days)


def assemble_view(
    household: Household,
    view: View,
    window: DateWindow,
    tasks: list[Task],
    options: FilterOptions,
    anchor: date | None = None,
    show_all_tags: bool = False,
) -> CalendarView:
    """
    Pure assembly of a calendar view from fetched tasks.

    Fetches match on either dueAt or nextOccurrenceAt, so the set that will
    actually land in the window is bucketed first. Chip counts and tag chips
    come from that set; then the filter pipeline runs and the result is
    bucketed per day.
    """
    in_window = flatten(materialize_window(visible_tasks(tasks, window.start, window.tz), window))
    result = apply_filters(in_window, options)
    buckets = materialize_window(result.tasks, window)
    grid = month_grid(anchor or window.first_day) if view == View.MONTH else []
    return CalendarView(
        household=household,
        view=view,
        window=window,
        available=True,
        buckets=buckets,
        child_counts=result.child_counts,
        tags=tag_chips(result.tasks, show_all=show_all_tags),
        grid=grid,
    )


def load_calendar(
    config: Config,
    repo: TaskRepository,
    households: HouseholdRepository,
    household_id: str,
    view: View,
    anchor: date,
    options: FilterOptions | None = None,
    agenda_days: int | None = None,
    custom_end: date | None = None,
    show_all_tags: bool = False,
) -> CalendarView:
    """Fetch and assemble one calendar view."""
    household = resolve_household(config, households, household_id)
    window = view_window(view, anchor, household, agenda_days or config.agenda_days, custom_end)
    tasks = fetch_tasks(repo, household_id, window)
    if tasks is None:
        return CalendarView(household=household, view=view, window=window, available=False)
    return assemble_view(household, view, window, tasks, options or FilterOptions(), anchor, show_all_tags)


def load_timeline(
    config: Config,
    repo: TaskRepository,
    households: HouseholdRepository,
    household_id: str,
    day: date,
    options: FilterOptions | None = None,
) -> TimelineView:
    """Fetch tasks for one day and compute busy/free intervals."""
    household = resolve_household(config, households, household_id)
    window = day_window(day, household.zone)
    tasks = fetch_tasks(repo, household_id, window)
    if tasks is None:
        return TimelineView(household=household, window=window, available=False)
    narrowed = apply_filters(tasks, options or FilterOptions()).tasks
    start_hour, end_hour = config.timeline_bounds()
    timeline = build_timeline(narrowed, day, household.zone, start_hour, end_hour)
    return TimelineView(household=household, window=window, available=True, timeline=timeline)


# ============== Saved ranges and filters ==============


def load_ranges(prefs: PreferenceStore, household_id: str) -> list[NamedRange]:
    ranges = []
    for raw in prefs.get(household_id, RANGES_KEY) or []:
        try:
            ranges.append(NamedRange.from_dict(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Dropping unreadable saved range {raw!r}: {e}")
    return ranges


def save_range(prefs: PreferenceStore, household_id: str, entry: NamedRange) -> list[NamedRange]:
    ranges = upsert_range(load_ranges(prefs, household_id), entry)
    prefs.set(household_id, RANGES_KEY, [r.to_dict() for r in ranges])
    return ranges


def delete_range(prefs: PreferenceStore, household_id: str, name: str) -> bool:
    ranges = load_ranges(prefs, household_id)
    remaining = remove_range(ranges, name)
    if len(remaining) == len(ranges):
        return False
    prefs.set(household_id, RANGES_KEY, [r.to_dict() for r in remaining])
    return True


def get_range(prefs: PreferenceStore, household_id: str, name: str) -> NamedRange | None:
    return find_range(load_ranges(prefs, household_id), name)


def _filters_key(view: View) -> str:
    return f"filters:{view.value}"


def load_filters(prefs: PreferenceStore, household_id: str, view: View) -> FilterOptions:
    return FilterOptions.from_dict(prefs.get(household_id, _filters_key(view)))


def save_filters(prefs: PreferenceStore, household_id: str, view: View, options: FilterOptions) -> None:
    prefs.set(household_id, _filters_key(view), options.to_dict())


def clear_filters(prefs: PreferenceStore, household_id: str, view: View) -> None:
    prefs.delete(household_id, _filters_key(view))


# ============== Exceptions ==============


def _require_task(repo: TaskRepository, household_id: str, task_id: str) -> Task:
    task = repo.get_task(household_id, task_id)
    if task is None:
        raise RepositoryError(f"Task not found: {task_id}")
    return task


def occurrence_day_key(task: Task, household: Household, day: date | None = None) -> str:
    """Day key to attach an exception to: the given day, else the task's own day."""
    if day is not None:
        return day.isoformat()
    if task.effective_instant is None:
        raise ValueError(f"Task {task.id} has no date; pass one explicitly")
    return format_day(task.effective_instant, household.zone)


def skip_occurrence(
    config: Config,
    repo: TaskRepository,
    households: HouseholdRepository,
    household_id: str,
    task_id: str,
    day: date | None = None,
) -> str:
    """Hide one occurrence. Returns the skipped day key."""
    household = resolve_household(config, households, household_id)
    key = occurrence_day_key(_require_task(repo, household_id, task_id), household, day)
    repo.add_skip_date(household_id, task_id, key)
    return key


def shift_occurrence(
    config: Config,
    repo: TaskRepository,
    households: HouseholdRepository,
    household_id: str,
    task_id: str,
    minutes: int,
    day: date | None = None,
) -> str:
    """Move one occurrence by N minutes. Returns the affected day key."""
    household = resolve_household(config, households, household_id)
    key = occurrence_day_key(_require_task(repo, household_id, task_id), household, day)
    repo.set_shift(household_id, task_id, key, minutes)
    return key


def pause_task(
    config: Config,
    repo: TaskRepository,
    households: HouseholdRepository,
    household_id: str,
    task_id: str,
    until: date | None = None,
    days: int = 7,
    today: date | None = None,
) -> datetime:
    """Pause a task until a local day (default: N days from today)."""
    household = resolve_household(config, households, household_id)
    tz = household.zone
    if until is None:
        today = today or datetime.now(tz).date()
        until = today + timedelta(days=days)
    instant = start_of_day(until, tz)
    repo.set_paused_until(household_id, task_id, instant)
    return instant


def resume_task(repo: TaskRepository, household_id: str, task_id: str) -> None:
    repo.set_paused_until(household_id, task_id, None)


# ============== Recurrence advancement ==============


def advance_household(
    config: Config,
    repo: TaskRepository,
    households: HouseholdRepository,
    household_id: str,
    now: datetime | None = None,
) -> int:
    """
    Roll recurring tasks forward and store their new next occurrence.

    Returns the number of tasks updated. A failed fetch updates nothing.
    """
    household = resolve_household(config, households, household_id)
    now = now or datetime.now(household.zone)
    try:
        tasks = repo.fetch_recurring(household_id)
    except (RepositoryError, AuthenticationError) as e:
        logger.warning(f"Fetching recurring tasks failed for {household_id}: {e}")
        return 0

    updated = 0
    for task, next_at in advance_recurring(tasks, household.zone, now):
        try:
            repo.update_next_occurrence(household_id, task.id, next_at)
        except (RepositoryError, AuthenticationError) as e:
            logger.error(f"Failed to advance task {task.id}: {e}")
            continue
        logger.info(f"Advanced {task.id} to {next_at.isoformat() if next_at else 'none'}")
        updated += 1
    return updated


def default_anchor(household: Household) -> date:
    """Today in the household's timezone."""
    return datetime.now(get_zone(household.timezone)).date()
