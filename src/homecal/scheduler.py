"""Daily recurrence advancement daemon."""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import Config, load_config
from .errors import AuthenticationError, RepositoryError
from .workflows import advance_household, get_repository

logger = logging.getLogger(__name__)


def parse_run_time(value: str) -> tuple[int, int]:
    """Parse HH:MM into (hour, minute)."""
    hour, minute = map(int, value.split(":"))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time: {value!r}")
    return hour, minute


def run_advancement(config: Config, household_ids: list[str]) -> int:
    """Advance every household once. Returns the number of tasks updated."""
    try:
        repo = get_repository(config)
    except (RepositoryError, AuthenticationError) as e:
        logger.error(f"Cannot open task store: {e}")
        return 0

    total = 0
    for household_id in household_ids:
        updated = advance_household(config, repo, repo, household_id)
        logger.info(f"Advanced {updated} task(s) in {household_id}")
        total += updated
    return total


async def advance_job(config: Config, household_ids: list[str]) -> None:
    """Scheduled job: run the blocking advancement off the event loop."""
    logger.info("Running scheduled recurrence advancement")
    try:
        await asyncio.to_thread(run_advancement, config, household_ids)
    except Exception as e:
        logger.error(f"Recurrence advancement failed: {e}")


def setup_scheduler(config: Config | None = None, household_ids: list[str] | None = None) -> AsyncIOScheduler:
    """Set up the daily advancement job."""
    if config is None:
        config = load_config()
    if household_ids is None:
        household_ids = [config.default_household] if config.default_household else []

    scheduler = AsyncIOScheduler(timezone=config.timezone or "UTC")

    if not household_ids:
        logger.warning("No households configured - nothing to advance")
        return scheduler

    try:
        hour, minute = parse_run_time(config.advance_time)
    except ValueError:
        logger.warning(f"Invalid advance time format: {config.advance_time}")
        return scheduler

    scheduler.add_job(
        advance_job,
        CronTrigger(hour=hour, minute=minute),
        args=[config, household_ids],
        id="advance_recurring",
    )
    logger.info(f"Scheduled recurrence advancement at {hour:02d}:{minute:02d}")
    return scheduler


def run_daemon(household_ids: list[str] | None = None, run_now: bool = False) -> None:
    """Run the advancement daemon until interrupted."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    config = load_config()
    scheduler = setup_scheduler(config, household_ids)

    async def serve() -> None:
        # AsyncIOScheduler binds to the loop that is running when it starts
        scheduler.start()
        logger.info("Scheduler started")
        if run_now:
            await advance_job(config, household_ids or [config.default_household])
        await asyncio.Event().wait()

    try:
        asyncio.run(serve())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Stopping homecal daemon")
