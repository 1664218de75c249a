import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.config import Settings, settings as default_settings
from ingestion.runner import SyncRunner

logger = logging.getLogger(__name__)

JOB_ID = "card_price_sync"


class SyncScheduler:
    """Run the full sync once a day at SYNC_HOUR:SYNC_MINUTE."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        runner_factory: Callable[[], SyncRunner] = SyncRunner
    ):
        self.config = config or default_settings
        self.runner_factory = runner_factory
        self.scheduler = AsyncIOScheduler()

    @property
    def trigger(self) -> CronTrigger:
        return CronTrigger(hour=self.config.SYNC_HOUR, minute=self.config.SYNC_MINUTE)

    async def run_sync_job(self):
        """Job to run the sync pipeline"""
        logger.info("Scheduler: Starting card price sync")
        try:
            await self.runner_factory().run()
        except Exception as e:
            # Already recorded and notified by the runner; the scheduler keeps going.
            logger.error(f"Scheduler: sync job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=self.trigger,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(
            f"Sync scheduler started (daily at {self.config.SYNC_HOUR:02d}:{self.config.SYNC_MINUTE:02d})"
        )

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")
