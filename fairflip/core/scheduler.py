from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from fairflip.config import settings
from fairflip.core.archive import flip_archive
from fairflip.core.logger import get_logger
from fairflip.core.matches import match_manager

logger = get_logger("scheduler")


class HousekeepingScheduler:
    """Background ticks for archive eviction and stale match cleanup."""

    def __init__(self):
        self.scheduler = BackgroundScheduler()

    def start(self):
        self.scheduler.add_job(
            self.evict_archive,
            IntervalTrigger(seconds=settings.fairness.eviction_interval_seconds),
            id="evict_archive",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.cleanup_matches,
            IntervalTrigger(minutes=1),
            id="cleanup_matches",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Housekeeping scheduler started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Housekeeping scheduler shutdown")

    def evict_archive(self):
        try:
            flip_archive.evict_expired()
        except Exception as e:
            logger.error(f"Archive eviction failed: {e}", exc_info=True)

    def cleanup_matches(self):
        try:
            match_manager.cleanup_stale()
        except Exception as e:
            logger.error(f"Stale match cleanup failed: {e}", exc_info=True)


housekeeping_scheduler = HousekeepingScheduler()
