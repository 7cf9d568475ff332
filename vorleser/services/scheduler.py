import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from vorleser.config import settings
from vorleser.services.scan_manager import scan_manager

logger = logging.getLogger(__name__)


class SchedulerService:
    _instance = None
    _scheduler = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(SchedulerService, cls).__new__(cls)
            cls._scheduler = BackgroundScheduler()
        return cls._instance

    def start(self):
        """Start the scheduler if not already running."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started.")
            self.reschedule_jobs()

    def stop(self):
        """Shutdown the scheduler."""
        if self._scheduler.running:
            self._scheduler.shutdown()
            logger.info("Scheduler stopped.")

    def reschedule_jobs(self, interval: str = None, hour: int = None):
        """Configure the periodic library scan from settings (or the given overrides)."""
        self._scheduler.remove_all_jobs()

        interval = interval or settings.scan_interval
        hour = settings.scan_hour if hour is None else hour

        if interval == "disabled":
            logger.info("Scheduled library scan disabled")
            return

        self._scheduler.add_job(
            self.run_scan_job,
            trigger=self._get_trigger_for_interval(interval, hour=hour),
            id="scan",
            replace_existing=True
        )
        logger.info(f"Scheduled Library Scan: {interval} (at {hour}:00)")

    @staticmethod
    def _get_trigger_for_interval(interval: str, hour: int) -> CronTrigger:
        """
        Map simple string settings to CronTriggers.
        """
        if interval == "hourly":
            return CronTrigger(minute=0)
        elif interval == "daily":
            return CronTrigger(hour=hour, minute=0)
        elif interval == "weekly":
            return CronTrigger(day_of_week='mon', hour=hour, minute=0)
        else:
            # Default fallback (Daily)
            return CronTrigger(hour=hour, minute=0)

    @staticmethod
    def run_scan_job():
        logger.info("Running Scheduled Library Scan...")
        results = scan_manager.scan_all()
        for result in results:
            logger.info(f"Scheduled scan of library {result['library']}: {result['status']}")
        return results


# Singleton accessor
scheduler_service = SchedulerService()
