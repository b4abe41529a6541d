"""Ports - interfaces/protocols for external dependencies."""

from .task_repo import TaskRepository
from .household_repo import HouseholdRepository
from .preference_store import PreferenceStore

__all__ = [
    "TaskRepository",
    "HouseholdRepository",
    "PreferenceStore",
]
