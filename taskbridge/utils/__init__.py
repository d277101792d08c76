"""Shared utilities."""

from .retry import retry_with_backoff, PROVIDER_RETRY
from .background_tasks import create_safe_task, drain_background_tasks, get_active_task_count
from .datetime_utils import utc_now, ensure_aware, days_from, minutes_ago

__all__ = [
    "retry_with_backoff",
    "PROVIDER_RETRY",
    "create_safe_task",
    "drain_background_tasks",
    "get_active_task_count",
    "utc_now",
    "ensure_aware",
    "days_from",
    "minutes_ago",
]
