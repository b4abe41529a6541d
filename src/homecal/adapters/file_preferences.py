"""File-based preference storage adapter."""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class FilePreferenceStore:
    """
    File-based preference storage.

    Implements PreferenceStore protocol. Each household gets one JSON file
    of key -> blob; blobs are stored as given and never interpreted here.
    """

    def __init__(self, prefs_dir: Path | str):
        self.prefs_dir = Path(prefs_dir).expanduser()
        self.prefs_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, household_id: str) -> Path:
        """Get the file path for a household."""
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in household_id) or "default"
        return self.prefs_dir / f"{safe}.json"

    def _read_all(self, household_id: str) -> dict:
        path = self._path_for(household_id)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt preferences file {path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, household_id: str, data: dict) -> None:
        self._path_for(household_id).write_text(json.dumps(data, indent=2))

    def get(self, household_id: str, key: str) -> Any | None:
        """Read a stored blob. Returns None if not set."""
        return self._read_all(household_id).get(key)

    def set(self, household_id: str, key: str, value: Any) -> None:
        """Write/overwrite a blob."""
        data = self._read_all(household_id)
        data[key] = value
        self._write_all(household_id, data)

    def delete(self, household_id: str, key: str) -> None:
        """Remove a blob if present."""
        data = self._read_all(household_id)
        if key in data:
            del data[key]
            self._write_all(household_id, data)

    def keys(self, household_id: str) -> list[str]:
        """List stored keys for a household."""
        return sorted(self._read_all(household_id))
