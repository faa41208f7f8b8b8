"""
Background job scheduler for semantic cache maintenance.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from observability import trace_logger


class CacheMaintenanceScheduler:
    """Runs cache maintenance on the application's event loop."""

    def __init__(self, orchestrator, interval_hours: int = None):
        self.orchestrator = orchestrator
        self.interval_hours = interval_hours or settings.cache_maintenance_interval_hours
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Start the scheduler. Must be called with a running event loop."""
        self.scheduler.add_job(
            func=self.run_maintenance,
            trigger=IntervalTrigger(hours=self.interval_hours),
            id="cache_maintenance",
            name="Remove expired semantic cache entries",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

        self.scheduler.start()
        trace_logger.info("Job scheduler started", interval_hours=self.interval_hours)

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        trace_logger.info("Job scheduler stopped")

    async def run_maintenance(self):
        """Run one maintenance pass. Failures are logged and retried next interval."""
        try:
            report = await self.orchestrator.perform_maintenance()
            if report is not None:
                trace_logger.info(
                    "Scheduled cache maintenance finished",
                    removed_count=report.removed_count
                )
        except Exception as e:
            trace_logger.error_occurred(
                error_type="cache_maintenance_error",
                error_message=str(e)
            )
