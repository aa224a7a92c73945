"""Daily backup trigger."""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ._utils import logger
from .backup import BackupManager
from .backup.exceptions import StackBackupError
from .config import ScheduleConfig

JOB_ID = "daily_backup"


class BackupScheduler:
    """Run ``BackupManager.create_backup`` once a day at a fixed local time."""

    def __init__(
        self,
        manager: BackupManager,
        config: Optional[ScheduleConfig] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.manager = manager
        self.config = config or ScheduleConfig()
        self.scheduler = scheduler or AsyncIOScheduler()

    def trigger(self) -> CronTrigger:
        return CronTrigger(
            hour=self.config.hour,
            minute=self.config.minute,
            timezone=self.config.timezone,
        )

    async def run_backup(self) -> None:
        """Scheduled job body. Failures are logged, never raised into the scheduler."""
        logger.info("Scheduled backup started")
        try:
            result = await self.manager.create_backup()
        except StackBackupError as e:
            logger.error(f"Scheduled backup failed: {e}")
            return
        logger.info(f"Scheduled backup complete: {result.filename} ({result.size_formatted})")

    def start(self) -> None:
        if not self.config.enabled:
            logger.info("Scheduled backups disabled")
            return

        self.scheduler.add_job(
            self.run_backup,
            self.trigger(),
            id=JOB_ID,
            name="Daily backup",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=300,
        )
        self.scheduler.start()
        logger.info(
            f"Daily backup scheduled at {self.config.hour:02d}:{self.config.minute:02d} "
            f"({self.config.timezone})"
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
