"""Tests for the advancement scheduler."""

from unittest.mock import MagicMock, patch

import pytest

from homecal.config import Config
from homecal.errors import RepositoryError
from homecal.scheduler import parse_run_time, run_advancement, setup_scheduler


class TestSetupScheduler:
    def test_schedules_daily_job(self):
        config = Config(default_household="h1", advance_time="03:15", timezone="America/Toronto")
        scheduler = setup_scheduler(config)
        jobs = scheduler.get_jobs()
        assert [j.id for j in jobs] == ["advance_recurring"]
        assert "hour='3'" in str(jobs[0].trigger)
        assert "minute='15'" in str(jobs[0].trigger)
        assert jobs[0].args[1] == ["h1"]

    def test_no_household_no_job(self):
        assert setup_scheduler(Config(advance_time="03:00")).get_jobs() == []

    def test_invalid_time_no_job(self):
        assert setup_scheduler(Config(default_household="h1", advance_time="late")).get_jobs() == []

    def test_parse_run_time(self):
        assert parse_run_time("3:05") == (3, 5)
        with pytest.raises(ValueError):
            parse_run_time("25:00")


class TestRunAdvancement:
    @patch("homecal.scheduler.advance_household", return_value=2)
    @patch("homecal.scheduler.get_repository")
    def test_runs_each_household(self, mock_repo, mock_advance):
        repo = MagicMock()
        mock_repo.return_value = repo
        config = Config()

        assert run_advancement(config, ["h1", "h2"]) == 4
        assert [c.args[3] for c in mock_advance.call_args_list] == ["h1", "h2"]

    @patch("homecal.scheduler.get_repository", side_effect=RepositoryError("FIRESTORE_PROJECT_ID not configured"))
    def test_store_unavailable(self, mock_repo):
        assert run_advancement(Config(), ["h1"]) == 0
