"""Tests for configuration loading."""

import json
from unittest.mock import patch

import pytest

from homecal.config import Config, Tokens, load_config, parse_hour_range


@pytest.fixture
def write_conf(tmp_path):
    """Write a homecal.conf and return its path."""
    def _write(text: str):
        path = tmp_path / "homecal.conf"
        path.write_text(text)
        return path
    return _write


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "missing.conf") == Config()

    def test_parses_keys(self, write_conf):
        path = write_conf(
            "# household settings\n"
            "FIRESTORE_PROJECT_ID=family-app\n"
            'FIREBASE_API_KEY="abc123"  # from console\n'
            "DEFAULT_HOUSEHOLD=smiths\n"
            "TIMEZONE=America/Toronto # local\n"
            "AGENDA_DAYS=21\n"
            "TIMELINE_HOURS=07:00-21:00\n"
            "ADVANCE_TIME=02:30\n"
            "\n"
            "not a setting\n"
        )
        config = load_config(path)
        assert config.firestore_project_id == "family-app"
        assert config.firebase_api_key == "abc123"
        assert config.default_household == "smiths"
        assert config.timezone == "America/Toronto"
        assert config.agenda_days == 21
        assert config.timeline_bounds() == (7, 21)
        assert config.advance_time == "02:30"

    def test_invalid_values_keep_defaults(self, write_conf):
        config = load_config(write_conf("AGENDA_DAYS=lots\nTIMELINE_HOURS=late\n"))
        assert config.agenda_days == 14
        assert config.timeline_hours == "06:00-22:00"

    def test_unknown_timezone_keeps_default(self, write_conf):
        config = load_config(write_conf("TIMEZONE=Mars/Olympus\nDEFAULT_HOUSEHOLD=smiths\n"))
        assert config.timezone == "UTC"
        assert config.default_household == "smiths"

    def test_unknown_keys_ignored(self, write_conf):
        assert load_config(write_conf("SOMETHING_ELSE=1\n")) == Config()


class TestParseHourRange:
    def test_valid(self):
        assert parse_hour_range("06:00-22:00") == (6, 22)
        assert parse_hour_range("8-24") == (8, 24)

    @pytest.mark.parametrize("value", ["22:00-06:00", "06:00", "x-y", "00:00-25:00"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_hour_range(value)


class TestTokens:
    def test_save_and_load(self, tmp_path):
        token_file = tmp_path / "config" / ".tokens.json"
        with patch("homecal.config.TOKEN_FILE", token_file):
            Tokens(id_token="id", refresh_token="refresh", expires_at=123).save()
            assert token_file.stat().st_mode & 0o777 == 0o600
            assert Tokens.load() == Tokens(id_token="id", refresh_token="refresh", expires_at=123)

    def test_load_missing_or_corrupt(self, tmp_path):
        token_file = tmp_path / ".tokens.json"
        with patch("homecal.config.TOKEN_FILE", token_file):
            assert Tokens.load() == Tokens()
            token_file.write_text("{not json")
            assert Tokens.load() == Tokens()

    def test_saved_format(self, tmp_path):
        token_file = tmp_path / ".tokens.json"
        with patch("homecal.config.TOKEN_FILE", token_file):
            Tokens(id_token="id", refresh_token="r", expires_at=5).save()
        assert json.loads(token_file.read_text()) == {"id_token": "id", "refresh_token": "r", "expires_at": 5}
