"""Periodic ticker for the reminder processors (APScheduler, asyncio)."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reminders import config
from reminders.processors import (
    process_daily_digests,
    process_post_start_reminders,
    process_pre_start_reminders,
)

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """Runs each processor on its cadence.

    Jobs never overlap with themselves (max_instances=1) and missed ticks are
    collapsed into one run; duplicate sends are prevented by the claim store,
    not by the scheduler.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    def start(self) -> None:
        self.scheduler.add_job(
            process_pre_start_reminders,
            IntervalTrigger(minutes=config.REMINDER_INTERVAL_MINUTES),
            id="reminders_pre_start",
            name="Pre-start activity reminders",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            process_post_start_reminders,
            IntervalTrigger(minutes=config.REMINDER_INTERVAL_MINUTES),
            id="reminders_post_start",
            name="Post-start open activity reminders",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            process_daily_digests,
            IntervalTrigger(minutes=config.DIGEST_INTERVAL_MINUTES),
            id="reminders_daily_digest",
            name="Daily activity digest",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "Reminder scheduler started (activity reminders every %d min, digest every %d min)",
            config.REMINDER_INTERVAL_MINUTES, config.DIGEST_INTERVAL_MINUTES,
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Reminder scheduler stopped")
