"""Tests for the single-day timeline."""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from homecal.core.tasks import Task
from homecal.core.timeline import (
    TimeSlot,
    build_timeline,
    busy_intervals,
    display_window,
    find_free_slots,
    merge_intervals,
)

TORONTO = ZoneInfo("America/Toronto")


# Fixtures
@pytest.fixture
def today():
    return date(2025, 1, 15)


@pytest.fixture
def at(today):
    """Local instant on today at HH:MM."""
    def _at(hour: int, minute: int = 0, day: date | None = None) -> datetime:
        return datetime.combine(day or today, time(hour, minute), tzinfo=TORONTO)
    return _at


@pytest.fixture
def slot(at):
    def _slot(start: tuple[int, int], end: tuple[int, int]) -> TimeSlot:
        return TimeSlot(start=at(*start), end=at(*end))
    return _slot


class TestTimeSlot:
    def test_duration_minutes(self, slot):
        assert slot((9, 0), (10, 30)).duration_minutes() == 90

    def test_format(self, slot):
        assert slot((9, 0), (10, 30)).format() == "09:00-10:30 (90 min)"

    def test_contains(self, slot, at):
        s = slot((9, 0), (10, 0))
        assert s.contains(at(9, 30)) is True
        assert s.contains(at(10, 0)) is False

    def test_overlaps(self, slot):
        assert slot((9, 0), (10, 0)).overlaps(slot((9, 30), (11, 0))) is True
        assert slot((9, 0), (10, 0)).overlaps(slot((10, 0), (11, 0))) is False  # Adjacent


class TestBusyIntervals:
    def test_start_and_due_same_day(self, today, at):
        task = Task(id="1", title="Practice", start_at=at(16), due_at=at(17, 30))
        busy = busy_intervals([task], today, TORONTO)
        assert [(s.start, s.end) for s in busy] == [(at(16), at(17, 30))]

    def test_due_only_gets_default_before(self, today, at):
        task = Task(id="1", title="Forms due", due_at=at(12))
        busy = busy_intervals([task], today, TORONTO)
        assert [(s.start, s.end) for s in busy] == [(at(11, 30), at(12))]

    def test_next_occurrence_gets_default_after(self, today, at):
        task = Task(id="1", title="Piano", next_occurrence_at=at(15))
        busy = busy_intervals([task], today, TORONTO)
        assert [(s.start, s.end) for s in busy] == [(at(15), at(15, 30))]

    def test_start_on_other_day_uses_due(self, today, at):
        task = Task(id="1", title="Project", start_at=at(9, day=today - timedelta(days=2)), due_at=at(12))
        busy = busy_intervals([task], today, TORONTO)
        assert [(s.start, s.end) for s in busy] == [(at(11, 30), at(12))]

    def test_hidden_tasks_ignored(self, today, at):
        task = Task(id="1", title="Skipped", due_at=at(12), skip_dates={"2025-01-15"})
        assert busy_intervals([task], today, TORONTO) == []

    def test_shift_moves_interval(self, today, at):
        task = Task(id="1", title="Piano", next_occurrence_at=at(15), exception_shifts={"2025-01-15": 60})
        busy = busy_intervals([task], today, TORONTO)
        assert [(s.start, s.end) for s in busy] == [(at(16), at(16, 30))]

    def test_other_days_ignored(self, today, at):
        task = Task(id="1", title="Tomorrow", due_at=at(12, day=today + timedelta(days=1)))
        assert busy_intervals([task], today, TORONTO) == []

    def test_converted_to_household_zone(self, today, at):
        task = Task(id="1", title="UTC stored", due_at=at(12).astimezone(ZoneInfo("UTC")))
        busy = busy_intervals([task], today, TORONTO)
        assert busy[0].end.hour == 12


class TestMergeIntervals:
    def test_overlapping_and_touching(self, slot):
        merged = merge_intervals([slot((10, 0), (11, 0)), slot((9, 0), (10, 0)), slot((10, 30), (12, 0))])
        assert [(s.start.hour, s.end.hour) for s in merged] == [(9, 12)]

    def test_disjoint(self, slot):
        merged = merge_intervals([slot((13, 0), (14, 0)), slot((9, 0), (10, 0))])
        assert [(s.start.hour, s.end.hour) for s in merged] == [(9, 10), (13, 14)]

    def test_contained(self, slot):
        merged = merge_intervals([slot((9, 0), (12, 0)), slot((10, 0), (11, 0))])
        assert [(s.start.hour, s.end.hour) for s in merged] == [(9, 12)]


class TestDisplayWindow:
    def test_hours_on_the_day(self, today, at):
        window = display_window(today, TORONTO, 6, 22)
        assert (window.start, window.end) == (at(6), at(22))

    def test_end_24_is_next_midnight(self, today, at):
        window = display_window(today, TORONTO, 0, 24)
        assert window.end == at(0, day=today + timedelta(days=1))
        assert window.duration_minutes() == 24 * 60


class TestFindFreeSlots:
    def test_empty_day_is_all_free(self, today, at):
        slots = find_free_slots([], today, TORONTO)
        assert [(s.start, s.end) for s in slots] == [(at(6), at(22))]
        assert slots[0].duration_minutes() == 16 * 60

    def test_gaps_between_busy(self, today, at, slot):
        busy = [slot((9, 0), (10, 0)), slot((10, 15), (11, 0))]
        slots = find_free_slots(busy, today, TORONTO)
        assert [(s.start, s.end) for s in slots] == [
            (at(6), at(9)),
            (at(10), at(10, 15)),
            (at(11), at(22)),
        ]

    def test_clipped_to_display_window(self, today, at, slot):
        busy = [slot((5, 0), (7, 0)), slot((21, 0), (23, 0))]
        slots = find_free_slots(busy, today, TORONTO)
        assert [(s.start, s.end) for s in slots] == [(at(7), at(21))]

    def test_min_duration_filters_short_gaps(self, today, slot):
        busy = [slot((9, 0), (10, 0)), slot((10, 15), (11, 0))]
        slots = find_free_slots(busy, today, TORONTO, min_duration=30)
        assert all(s.duration_minutes() >= 30 for s in slots)
        assert len(slots) == 2

    def test_custom_hours(self, today, at):
        slots = find_free_slots([], today, TORONTO, display_start=8, display_end=24)
        assert slots[0].start == at(8)
        assert slots[0].end == at(0, day=today + timedelta(days=1))


class TestBuildTimeline:
    def test_example_day(self, today, at):
        tasks = [
            Task(id="1", title="Swim", start_at=at(9), due_at=at(10)),
            Task(id="2", title="Snack", start_at=at(10, 15), due_at=at(11)),
        ]
        timeline = build_timeline(tasks, today, TORONTO)
        assert timeline.day == today
        assert [s.format() for s in timeline.busy] == ["09:00-10:00 (60 min)", "10:15-11:00 (45 min)"]
        assert [s.format() for s in timeline.free] == [
            "06:00-09:00 (180 min)",
            "10:00-10:15 (15 min)",
            "11:00-22:00 (660 min)",
        ]
