"""Tag, child and priority filtering - no I/O dependencies."""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from .tasks import Task

MAX_TAG_CHIPS = 12


class PrioritySort(str, Enum):
    NONE = "none"
    HIGH_FIRST = "high"
    LOW_FIRST = "low"


@dataclass(frozen=True)
class FilterOptions:
    """Filter state for one calendar view."""

    tag_terms: str = ""
    child_ids: frozenset[str] = field(default_factory=frozenset)
    priority_sort: PrioritySort = PrioritySort.NONE

    def to_dict(self) -> dict:
        return {
            "tags": self.tag_terms,
            "childIds": sorted(self.child_ids),
            "prioritySort": self.priority_sort.value,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "FilterOptions":
        """Rebuild from a stored blob; unknown or missing values fall back to defaults."""
        if not data:
            return cls()
        try:
            sort = PrioritySort(data.get("prioritySort", PrioritySort.NONE.value))
        except ValueError:
            sort = PrioritySort.NONE
        return cls(
            tag_terms=str(data.get("tags") or ""),
            child_ids=frozenset(str(c) for c in data.get("childIds") or []),
            priority_sort=sort,
        )


@dataclass
class FilterResult:
    """Filtered tasks plus the per-child counts shown on filter chips."""

    tasks: list[Task]
    child_counts: dict[str, int]


@dataclass
class TagChips:
    tags: list[str]
    visible: list[str]
    hidden_count: int


def parse_tag_terms(text: str) -> list[str]:
    """Lower-cased, trimmed, comma-separated terms; empties dropped."""
    return [t.strip().lower() for t in (text or "").split(",") if t.strip()]


def filter_by_tags(tasks: list[Task], terms: list[str]) -> list[Task]:
    """Keep tasks tagged with any of the terms (case-insensitive)."""
    if not terms:
        return list(tasks)
    wanted = set(terms)
    return [t for t in tasks if wanted & {c.lower() for c in t.context}]


def count_by_child(tasks: list[Task]) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for task in tasks:
        counts.update(set(task.child_ids))
    return dict(counts)


def filter_by_children(tasks: list[Task], child_ids: frozenset[str] | set[str]) -> list[Task]:
    """Keep tasks linked to any of the children."""
    if not child_ids:
        return list(tasks)
    return [t for t in tasks if set(t.child_ids) & set(child_ids)]


def sort_by_priority(tasks: list[Task], order: PrioritySort) -> list[Task]:
    """
    Stable priority sort; missing priority counts as 0.

    Equal priorities keep their input order in both directions.
    """
    if order == PrioritySort.HIGH_FIRST:
        return sorted(tasks, key=lambda t: -t.sort_priority)
    if order == PrioritySort.LOW_FIRST:
        return sorted(tasks, key=lambda t: t.sort_priority)
    return list(tasks)


def apply_filters(tasks: list[Task], options: FilterOptions) -> FilterResult:
    """
    Run the filter pipeline.

    Order is fixed: tag filter, per-child counts, child filter, priority
    sort. The counts come from the tag-filtered set so each child chip shows
    how many tasks selecting that child would leave.
    """
    tagged = filter_by_tags(tasks, parse_tag_terms(options.tag_terms))
    child_counts = count_by_child(tagged)
    narrowed = filter_by_children(tagged, options.child_ids)
    return FilterResult(
        tasks=sort_by_priority(narrowed, options.priority_sort),
        child_counts=child_counts,
    )


def tag_chips(
    tasks: list[Task],
    show_all: bool = False,
    max_chips: int = MAX_TAG_CHIPS,
) -> TagChips:
    """Distinct tags of the shown tasks, sorted, truncated to max_chips unless show_all."""
    tags = sorted({c.strip() for t in tasks for c in t.context if c.strip()}, key=lambda c: (c.lower(), c))
    visible = tags if show_all else tags[:max_chips]
    return TagChips(tags=tags, visible=visible, hidden_count=len(tags) - len(visible))


def toggle_tag(tag_terms: str, tag: str) -> str:
    """Add or remove a tag in a comma-separated filter string."""
    current = [t.strip() for t in (tag_terms or "").split(",") if t.strip()]
    if tag in current:
        current.remove(tag)
    else:
        current.append(tag)
    return ", ".join(current)
