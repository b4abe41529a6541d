"""Configuration management for homecal."""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from .core.dates import InvalidDateError, get_zone

logger = logging.getLogger(__name__)

HOMECAL_HOME = Path(os.environ.get("HOMECAL_HOME", Path.home() / "homecal"))
CONFIG_FILE = HOMECAL_HOME / "config" / "homecal.conf"
TOKEN_FILE = HOMECAL_HOME / "config" / ".tokens.json"
DATA_DIR = HOMECAL_HOME / "data"


@dataclass
class Config:
    """homecal configuration."""

    firebase_api_key: str = ""
    firestore_project_id: str = ""
    default_household: str = ""
    # Used when a household has no timezone of its own
    timezone: str = "UTC"
    # Local JSON document store; when set, Firestore is not used
    data_file: str = ""
    agenda_days: int = 14
    timeline_hours: str = "06:00-22:00"
    advance_time: str = "03:00"

    def timeline_bounds(self) -> tuple[int, int]:
        """Start and end hour of the timeline display window."""
        return parse_hour_range(self.timeline_hours)


@dataclass
class Tokens:
    """Firebase id/refresh tokens exported from a signed-in app session."""

    id_token: str = ""
    refresh_token: str = ""
    # Unix time the id token stops being accepted
    expires_at: int = 0

    def save(self) -> None:
        """Persist to TOKEN_FILE, readable by the owner only."""
        TOKEN_FILE.parent.mkdir(parents=True, exist_ok=True)
        TOKEN_FILE.write_text(json.dumps(asdict(self)))
        TOKEN_FILE.chmod(0o600)

    @classmethod
    def load(cls) -> "Tokens":
        """Read TOKEN_FILE; a missing or unreadable file gives empty tokens."""
        try:
            data = json.loads(TOKEN_FILE.read_text())
        except FileNotFoundError:
            return cls()
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable token file {TOKEN_FILE}: {e}")
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def parse_hour_range(value: str) -> tuple[int, int]:
    """Parse "HH:MM-HH:MM" into (start_hour, end_hour)."""
    start_str, sep, end_str = value.partition("-")
    if not sep:
        raise ValueError(f"Invalid hour range: {value!r}")
    start = int(start_str.strip().split(":")[0])
    end = int(end_str.strip().split(":")[0])
    if not 0 <= start < end <= 24:
        raise ValueError(f"Invalid hour range: {value!r}")
    return start, end


def _unquote(value: str) -> str:
    """Strip surrounding quotes, or a trailing "# comment" from a bare value."""
    if value[:1] in ("'", '"'):
        closing = value.find(value[0], 1)
        return value[1:closing] if closing > 0 else value[1:]
    bare, _, _comment = value.partition("#")
    return bare.strip()


def _entries(text: str):
    """Yield (key, value) pairs from KEY=value lines, skipping comments."""
    for raw in text.splitlines():
        stripped = raw.strip()
        if stripped.startswith("#"):
            continue
        name, sep, rest = stripped.partition("=")
        if sep:
            yield name.strip().lower(), _unquote(rest.strip())


def load_config(path: Path | None = None) -> Config:
    """Build a Config from homecal.conf; missing keys keep their defaults."""
    config = Config()
    path = path or CONFIG_FILE

    if not path.exists():
        return config

    for key, value in _entries(path.read_text()):
        match key:
            case "firebase_api_key":
                config.firebase_api_key = value
            case "firestore_project_id":
                config.firestore_project_id = value
            case "default_household":
                config.default_household = value
            case "timezone":
                try:
                    get_zone(value)
                    config.timezone = value
                except InvalidDateError:
                    logger.warning(f"Ignoring invalid TIMEZONE: {value!r}")
            case "data_file":
                config.data_file = value
            case "agenda_days":
                try:
                    config.agenda_days = max(1, int(value))
                except ValueError:
                    logger.warning(f"Ignoring invalid AGENDA_DAYS: {value!r}")
            case "timeline_hours":
                try:
                    parse_hour_range(value)
                    config.timeline_hours = value
                except ValueError:
                    logger.warning(f"Ignoring invalid TIMELINE_HOURS: {value!r}")
            case "advance_time":
                config.advance_time = value
            case _:
                logger.debug(f"Unknown config key: {key}")

    return config
