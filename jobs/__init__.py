"""Background jobs."""

from jobs.scheduler import CacheMaintenanceScheduler

__all__ = ["CacheMaintenanceScheduler"]
