"""Household repository interface."""

from typing import Protocol

from homecal.core.household import Child, Household


class HouseholdRepository(Protocol):
    """Interface for household settings and children."""

    def get_household(self, household_id: str) -> Household | None:
        """Fetch a household. Returns None if not found."""
        ...

    def list_children(self, household_id: str) -> list[Child]:
        """List the children of a household."""
        ...
