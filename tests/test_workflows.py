"""Tests for the shared workflow layer."""

import json
from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from homecal.adapters.file_preferences import FilePreferenceStore
from homecal.adapters.firestore_rest import FirestoreAdapter
from homecal.adapters.json_store import JsonDocumentStore
from homecal.config import Config
from homecal.core.calendar import View
from homecal.core.dates import InvalidDateError
from homecal.core.filters import FilterOptions, PrioritySort
from homecal.core.household import Household, NamedRange
from homecal.core.recurrence import YearlyAnniversary
from homecal.core.tasks import Task
from homecal.errors import AuthenticationError, RepositoryError
from homecal.workflows import (
    advance_household,
    delete_range,
    get_preferences,
    get_range,
    get_repository,
    load_calendar,
    load_filters,
    load_ranges,
    load_timeline,
    pause_task,
    resolve_household,
    save_filters,
    save_range,
    shift_occurrence,
    skip_occurrence,
)

TORONTO = ZoneInfo("America/Toronto")


@pytest.fixture
def config():
    return Config(timezone="America/Toronto")


@pytest.fixture
def repo():
    """Mock repository implementing both task and household ports."""
    mock = MagicMock()
    mock.get_household.return_value = Household(id="h1", name="Smiths", timezone="America/Toronto")
    mock.fetch_in_range.return_value = []
    return mock


@pytest.fixture
def prefs(tmp_path):
    return FilePreferenceStore(tmp_path)


def at(day: int, hour: int = 9) -> datetime:
    return datetime(2025, 1, day, hour, 0, tzinfo=TORONTO)


class TestGetRepository:
    def test_json_store_when_data_file_set(self, tmp_path):
        repo = get_repository(Config(data_file=str(tmp_path / "data.json")))
        assert isinstance(repo, JsonDocumentStore)

    def test_firestore_by_default(self):
        repo = get_repository(Config(firestore_project_id="family-app"))
        assert isinstance(repo, FirestoreAdapter)

    def test_preferences_under_data_dir(self, tmp_path):
        with patch("homecal.workflows.DATA_DIR", tmp_path):
            prefs = get_preferences(Config())
        assert prefs.prefs_dir == tmp_path / "preferences"


class TestResolveHousehold:
    def test_uses_stored_household(self, config, repo):
        assert resolve_household(config, repo, "h1").name == "Smiths"

    def test_falls_back_when_missing(self, config, repo):
        repo.get_household.return_value = None
        household = resolve_household(config, repo, "h9")
        assert household.id == "h9"
        assert household.timezone == "America/Toronto"

    def test_falls_back_on_error(self, config, repo):
        repo.get_household.side_effect = RepositoryError("offline")
        assert resolve_household(config, repo, "h1").zone == TORONTO

    def test_invalid_stored_timezone_falls_back(self, config, repo):
        repo.get_household.side_effect = InvalidDateError("Unknown timezone: 'Mars/Olympus'")
        household = resolve_household(config, repo, "h1")
        assert household.id == "h1"
        assert household.zone == TORONTO

    def test_invalid_stored_timezone_still_renders(self, config, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({
            "households": {
                "h1": {
                    "name": "Smiths",
                    "timezone": "Mars/Olympus",
                    "tasks": {"a": {"title": "A", "dueAt": "2025-01-14T14:00:00Z"}},
                }
            }
        }))
        store = JsonDocumentStore(str(path))
        view = load_calendar(config, store, store, "h1", View.WEEK, date(2025, 1, 15))
        assert view.available is True
        assert view.household.zone == TORONTO
        assert [t.id for t in view.tasks] == ["a"]


class TestLoadCalendar:
    def test_week_view(self, config, repo):
        repo.fetch_in_range.return_value = [
            Task(id="a", title="A", due_at=at(14), priority=1, context=["sports"], child_ids=["ana"]),
            Task(id="b", title="B", due_at=at(14, 15), priority=3, context=["music"], child_ids=["ben"]),
            Task(id="c", title="C", due_at=at(16), context=["sports"], child_ids=["ben"], skip_dates={"2025-01-16"}),
        ]
        view = load_calendar(config, repo, repo, "h1", View.WEEK, date(2025, 1, 15))

        assert view.available is True
        start, end = repo.fetch_in_range.call_args.args[1:]
        assert start == datetime(2025, 1, 13, tzinfo=TORONTO)
        assert end.date() == date(2025, 1, 19)
        assert list(view.buckets) == ["2025-01-14"]
        # Hidden tasks do not count towards chips
        assert view.child_counts == {"ana": 1, "ben": 1}
        assert view.tags.tags == ["music", "sports"]

    def test_filters_and_sort(self, config, repo):
        repo.fetch_in_range.return_value = [
            Task(id="a", title="A", due_at=at(14), priority=1, child_ids=["ana"]),
            Task(id="b", title="B", due_at=at(14, 15), priority=3, child_ids=["ana"]),
            Task(id="c", title="C", due_at=at(14, 20), priority=5, child_ids=["ben"]),
        ]
        options = FilterOptions(child_ids=frozenset({"ana"}), priority_sort=PrioritySort.HIGH_FIRST)
        view = load_calendar(config, repo, repo, "h1", View.AGENDA, date(2025, 1, 14), options=options)
        assert [t.id for t in view.tasks] == ["b", "a"]
        assert view.child_counts == {"ana": 2, "ben": 1}

    def test_month_has_grid(self, config, repo):
        view = load_calendar(config, repo, repo, "h1", View.MONTH, date(2025, 1, 15))
        assert len(view.grid) == 42
        assert view.window.first_day == date(2024, 12, 30)

    def test_agenda_length_from_config(self, repo):
        config = Config(timezone="America/Toronto", agenda_days=3)
        view = load_calendar(config, repo, repo, "h1", View.AGENDA, date(2025, 1, 15))
        assert view.window.last_day == date(2025, 1, 17)

    def test_custom_range(self, config, repo):
        view = load_calendar(
            config, repo, repo, "h1", View.CUSTOM, date(2025, 1, 20), custom_end=date(2025, 1, 10)
        )
        assert view.window.format() == "2025-01-10 - 2025-01-20"

    def test_chips_ignore_tasks_outside_window(self, config, repo):
        repo.fetch_in_range.return_value = [
            # Fetched on dueAt, but placed by its next occurrence in February
            Task(
                id="party",
                title="Party",
                due_at=at(15),
                next_occurrence_at=datetime(2025, 2, 20, 18, tzinfo=TORONTO),
                context=["party"],
                child_ids=["kid"],
            ),
            # Shifted from Sunday evening into the next week
            Task(id="late", title="Late", due_at=at(19, 22), exception_shifts={"2025-01-19": 180}, context=["late"]),
            Task(id="a", title="A", due_at=at(14), context=["sports"], child_ids=["ana"]),
        ]
        view = load_calendar(config, repo, repo, "h1", View.WEEK, date(2025, 1, 15))

        assert [t.id for t in view.tasks] == ["a"]
        assert view.child_counts == {"ana": 1}
        assert view.tags.tags == ["sports"]

    @pytest.mark.parametrize("error", [RepositoryError("offline"), AuthenticationError("expired")])
    def test_fetch_failure_is_unavailable(self, config, repo, error):
        repo.fetch_in_range.side_effect = error
        view = load_calendar(config, repo, repo, "h1", View.WEEK, date(2025, 1, 15))
        assert view.available is False
        assert view.buckets == {}


class TestLoadTimeline:
    def test_timeline(self, config, repo):
        repo.fetch_in_range.return_value = [Task(id="a", title="A", start_at=at(15, 9), due_at=at(15, 10))]
        result = load_timeline(config, repo, repo, "h1", date(2025, 1, 15))
        assert result.available is True
        assert [s.format() for s in result.timeline.busy] == ["09:00-10:00 (60 min)"]
        assert len(result.timeline.free) == 2

    def test_timeline_unavailable(self, config, repo):
        repo.fetch_in_range.side_effect = RepositoryError("offline")
        result = load_timeline(config, repo, repo, "h1", date(2025, 1, 15))
        assert result.available is False
        assert result.timeline is None


class TestRangesAndFilters:
    def test_save_list_delete(self, prefs):
        save_range(prefs, "h1", NamedRange("Break", date(2025, 3, 10), date(2025, 3, 14)))
        save_range(prefs, "h1", NamedRange("Camp", date(2025, 7, 1), date(2025, 7, 5)))
        save_range(prefs, "h1", NamedRange("Break", date(2025, 3, 17), date(2025, 3, 21)))

        assert [r.name for r in load_ranges(prefs, "h1")] == ["Camp", "Break"]
        assert get_range(prefs, "h1", "Break").start == date(2025, 3, 17)
        assert delete_range(prefs, "h1", "Camp") is True
        assert delete_range(prefs, "h1", "Camp") is False
        assert [r.name for r in load_ranges(prefs, "h1")] == ["Break"]

    def test_unreadable_ranges_dropped(self, prefs):
        prefs.set("h1", "ranges", [{"name": "ok", "start": "2025-01-01", "end": "2025-01-02"}, {"name": "bad"}])
        assert [r.name for r in load_ranges(prefs, "h1")] == ["ok"]

    def test_filters_per_view(self, prefs):
        save_filters(prefs, "h1", View.WEEK, FilterOptions(tag_terms="sports"))
        assert load_filters(prefs, "h1", View.WEEK).tag_terms == "sports"
        assert load_filters(prefs, "h1", View.MONTH) == FilterOptions()


class TestExceptions:
    def test_skip_defaults_to_task_day(self, config, repo):
        repo.get_task.return_value = Task(id="t1", title="Late", due_at=at(15, 22))
        key = skip_occurrence(config, repo, repo, "h1", "t1")
        assert key == "2025-01-15"
        repo.add_skip_date.assert_called_once_with("h1", "t1", "2025-01-15")

    def test_skip_explicit_day(self, config, repo):
        repo.get_task.return_value = Task(id="t1", title="Late", due_at=at(15))
        assert skip_occurrence(config, repo, repo, "h1", "t1", date(2025, 1, 22)) == "2025-01-22"

    def test_skip_unknown_task(self, config, repo):
        repo.get_task.return_value = None
        with pytest.raises(RepositoryError):
            skip_occurrence(config, repo, repo, "h1", "ghost")
        repo.add_skip_date.assert_not_called()

    def test_skip_undated_task_needs_day(self, config, repo):
        repo.get_task.return_value = Task(id="t1", title="Someday")
        with pytest.raises(ValueError):
            skip_occurrence(config, repo, repo, "h1", "t1")

    def test_shift(self, config, repo):
        repo.get_task.return_value = Task(id="t1", title="Piano", next_occurrence_at=at(15, 16))
        assert shift_occurrence(config, repo, repo, "h1", "t1", -30) == "2025-01-15"
        repo.set_shift.assert_called_once_with("h1", "t1", "2025-01-15", -30)

    def test_pause_for_days(self, config, repo):
        instant = pause_task(config, repo, repo, "h1", "t1", days=7, today=date(2025, 1, 15))
        assert instant == datetime(2025, 1, 22, 0, 0, tzinfo=TORONTO)
        repo.set_paused_until.assert_called_once_with("h1", "t1", instant)

    def test_pause_until(self, config, repo):
        instant = pause_task(config, repo, repo, "h1", "t1", until=date(2025, 2, 1))
        assert instant.date() == date(2025, 2, 1)


class TestAdvanceHousehold:
    def test_writes_changed_tasks(self, config, repo):
        repo.fetch_recurring.return_value = [
            Task(
                id="bday",
                title="Birthday",
                recurrence=YearlyAnniversary(6, 15),
                next_occurrence_at=datetime(2024, 6, 15, tzinfo=TORONTO),
            )
        ]
        updated = advance_household(config, repo, repo, "h1", now=datetime(2025, 1, 15, tzinfo=TORONTO))
        assert updated == 1
        repo.update_next_occurrence.assert_called_once_with("h1", "bday", datetime(2025, 6, 15, tzinfo=TORONTO))

    def test_fetch_failure_updates_nothing(self, config, repo):
        repo.fetch_recurring.side_effect = RepositoryError("offline")
        assert advance_household(config, repo, repo, "h1", now=datetime(2025, 1, 15, tzinfo=timezone.utc)) == 0
        repo.update_next_occurrence.assert_not_called()

    def test_write_failure_continues(self, config, repo):
        repo.fetch_recurring.return_value = [
            Task(id="a", title="A", recurrence=YearlyAnniversary(6, 15)),
            Task(id="b", title="B", recurrence=YearlyAnniversary(7, 1)),
        ]
        repo.update_next_occurrence.side_effect = [RepositoryError("conflict"), None]
        assert advance_household(config, repo, repo, "h1", now=datetime(2025, 1, 15, tzinfo=TORONTO)) == 1
