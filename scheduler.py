import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cache import Cache
from config import get_settings


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, cache: Cache) -> None:
        settings = get_settings()
        self.cache = cache
        self.sweep_minutes = settings.cache_sweep_minutes
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        removed = self.cache.clean_expired_cache()
        stats = self.cache.stats()
        logger.info(
            f"cache_sweep: source={source} expired_removed={removed} "
            f"data={stats.data_count} validation={stats.validation_count} "
            f"calculation={stats.calculation_count}"
        )
        return removed

    def start(self) -> None:
        trigger = IntervalTrigger(minutes=self.sweep_minutes)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="cache_sweep",
            replace_existing=True,
            misfire_grace_time=60,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with cache sweep every {self.sweep_minutes}m")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
