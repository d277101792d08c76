"""
Scheduler manager.

Jobs:
- Cleanup and stale task reconciliation (every CLEANUP_INTERVAL_MINUTES)
- Channel health check, flushing the outbound queue once connected
"""

import logging
from datetime import datetime
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings

logger = logging.getLogger(__name__)


class SchedulerManager:
    """Runs periodic maintenance for the bridge."""

    def __init__(self, cleanup_job, gateway=None, outbound=None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.timezone = pytz.UTC
        self.cleanup_job = cleanup_job
        self.gateway = gateway
        self.outbound = outbound

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        """Start the scheduler with all jobs."""
        if self.running:
            return
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

        self.scheduler.add_job(
            self._cleanup_job,
            IntervalTrigger(minutes=settings.cleanup_interval_minutes),
            id="cleanup",
            name="TTL Cleanup and Stale Task Reconciliation",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if self.gateway is not None and self.outbound is not None:
            self.scheduler.add_job(
                self._channel_health_job,
                IntervalTrigger(seconds=settings.channel_health_interval_seconds),
                id="channel_health",
                name="Channel Health Check",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        self.scheduler.start()
        logger.info(f"Scheduler started (cleanup every {settings.cleanup_interval_minutes} min)")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Scheduler stopped")

    async def _cleanup_job(self) -> None:
        logger.info("Running cleanup job")
        try:
            await self.cleanup_job.run()
        except Exception as e:
            logger.error(f"Error in cleanup job: {e}", exc_info=True)

    async def _channel_health_job(self) -> None:
        try:
            connected = await self.gateway.check_connection()
            if connected and self.outbound.queue_depth:
                await self.outbound.flush()
        except Exception as e:
            logger.error(f"Error in channel health job: {e}", exc_info=True)

    def trigger_job(self, job_id: str) -> bool:
        """Manually trigger a job."""
        if not self.scheduler:
            return False

        job = self.scheduler.get_job(job_id)
        if job:
            job.modify(next_run_time=datetime.now(self.timezone))
            return True

        return False

    def get_job_status(self) -> dict:
        """Get status of all scheduled jobs."""
        if not self.scheduler:
            return {}

        return {
            job.id: {
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        }
