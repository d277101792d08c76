"""
Centralized datetime utilities.

Everything persisted by the bridge is stored as timezone-aware UTC so that
TTL comparisons done in SQL and in Python agree.
"""

from datetime import datetime, timedelta
from typing import Optional

import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt


def days_from(now: datetime, days: int) -> datetime:
    """Expiry timestamp ``days`` after ``now``."""
    return now + timedelta(days=days)


def minutes_ago(now: datetime, minutes: int) -> datetime:
    return now - timedelta(minutes=minutes)
