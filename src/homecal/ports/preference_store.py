"""Preference storage interface."""

from typing import Any, Protocol


class PreferenceStore(Protocol):
    """Interface for per-household opaque preference blobs (saved ranges, filters)."""

    def get(self, household_id: str, key: str) -> Any | None:
        """Read a stored blob. Returns None if not set."""
        ...

    def set(self, household_id: str, key: str, value: Any) -> None:
        """Write/overwrite a blob."""
        ...

    def delete(self, household_id: str, key: str) -> None:
        """Remove a blob if present."""
        ...
