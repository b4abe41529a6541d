"""Household, child and saved-range value objects - no I/O dependencies."""

from dataclasses import dataclass
from datetime import date
from zoneinfo import ZoneInfo

from .dates import InvalidDateError, get_zone, is_day_key


@dataclass
class Household:
    """A household; its timezone governs every day boundary."""

    id: str
    name: str = ""
    timezone: str | None = None

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)

    @classmethod
    def from_doc(cls, doc_id: str, data: dict) -> "Household":
        tz = data.get("timezone") or None
        if tz:
            # Reject unknown zones here rather than at render time
            get_zone(tz)
        return cls(id=doc_id, name=data.get("name") or doc_id, timezone=tz)


@dataclass
class Child:
    """A child in a household, used for per-child calendar filters."""

    id: str
    display_name: str
    emoji: str = ""

    @classmethod
    def from_doc(cls, doc_id: str, data: dict) -> "Child":
        return cls(
            id=doc_id,
            display_name=data.get("displayName") or doc_id,
            emoji=data.get("emoji") or "",
        )


@dataclass
class NamedRange:
    """A custom date range saved under a name."""

    name: str
    start: date
    end: date

    def to_dict(self) -> dict:
        return {"name": self.name, "start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "NamedRange":
        start, end = data.get("start", ""), data.get("end", "")
        if not is_day_key(start) or not is_day_key(end):
            raise InvalidDateError(f"Invalid saved range: {data!r}")
        return cls(name=data["name"], start=date.fromisoformat(start), end=date.fromisoformat(end))


def upsert_range(ranges: list[NamedRange], entry: NamedRange) -> list[NamedRange]:
    """Add a saved range, replacing any existing one with the same name."""
    return [r for r in ranges if r.name != entry.name] + [entry]


def remove_range(ranges: list[NamedRange], name: str) -> list[NamedRange]:
    return [r for r in ranges if r.name != name]


def find_range(ranges: list[NamedRange], name: str) -> NamedRange | None:
    for r in ranges:
        if r.name == name:
            return r
    return None
