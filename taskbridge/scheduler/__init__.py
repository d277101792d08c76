"""Scheduled maintenance: TTL cleanup, stale task reconciliation, channel health."""

from .cleanup import CleanupJob, CleanupSummary, stale_task_notice
from .jobs import SchedulerManager

__all__ = ["CleanupJob", "CleanupSummary", "stale_task_notice", "SchedulerManager"]
