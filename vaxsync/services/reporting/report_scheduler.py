"""
Report Scheduler Service

Recomputes the previous calendar month's vaccine report on a cron schedule.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional
import logging

from croniter import croniter

from vaxsync.core.config import settings
from vaxsync.core.database import SessionLocal
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.reporting.monthly_report import (
    MonthlyReportCache, MonthlyReportService, previous_month
)

logger = logging.getLogger(__name__)


class MonthlyReportScheduler:
    """Runs the monthly rollup for the month just closed"""

    def __init__(self, tables: ReferenceTables, cache: Optional[MonthlyReportCache] = None,
                 cron_expression: Optional[str] = None, session_factory: Callable = SessionLocal,
                 poll_seconds: int = 60):
        self.tables = tables
        self.cache = cache
        self.cron_expression = cron_expression or settings.MONTHLY_REPORT_CRON
        if not croniter.is_valid(self.cron_expression):
            raise ValueError(f"Invalid cron expression: {self.cron_expression}")
        self.session_factory = session_factory
        self.poll_seconds = poll_seconds
        self.next_run: Optional[datetime] = None
        self.last_run: Optional[datetime] = None
        self.running = False
        self.scheduler_task = None

    def schedule_next(self, base: Optional[datetime] = None) -> datetime:
        cron = croniter(self.cron_expression, base or datetime.now())
        self.next_run = cron.get_next(datetime)
        return self.next_run

    def run_once(self, now: Optional[datetime] = None):
        """Compute the month before `now` and schedule the next run"""
        now = now or datetime.now()
        target = previous_month(now.date().replace(day=1))
        db = self.session_factory()
        try:
            result = MonthlyReportService(db, self.tables, self.cache).compute_monthly_report(target)
        finally:
            db.close()

        self.last_run = now
        self.schedule_next(now)
        if result.success:
            logger.info(f"Scheduled monthly report for {target} done. Next run: {self.next_run}")
        else:
            logger.error(f"Scheduled monthly report for {target} failed: {result.error.message}")
        return result

    async def start_scheduler(self):
        """Start the report scheduler"""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.running = True
        self.schedule_next()
        self.scheduler_task = asyncio.create_task(self._scheduler_loop())
        logger.info(f"Monthly report scheduler started, next run: {self.next_run}")

    async def stop_scheduler(self):
        """Stop the report scheduler"""
        self.running = False

        if self.scheduler_task:
            self.scheduler_task.cancel()
            try:
                await self.scheduler_task
            except asyncio.CancelledError:
                pass
            self.scheduler_task = None

        logger.info("Monthly report scheduler stopped")

    async def _scheduler_loop(self):
        """Main scheduler loop"""
        while self.running:
            try:
                if self.next_run and datetime.now() >= self.next_run:
                    await asyncio.to_thread(self.run_once)
                await asyncio.sleep(self.poll_seconds)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in scheduler loop: {str(e)}")
                self.schedule_next()
                await asyncio.sleep(self.poll_seconds)

        logger.info("Scheduler loop ended")
