"""Periodic memory cleanup."""

import logging
from datetime import datetime
from typing import Optional, Tuple

from config import settings

logger = logging.getLogger(__name__)


async def run_memory_maintenance(
    repository,
    now: datetime,
    superseded_retention_days: Optional[int] = None,
) -> Tuple[int, int]:
    """Delete expired memories and superseded ones past retention.

    Returns:
        (expired_deleted, superseded_deleted)
    """
    retention = superseded_retention_days or settings.memory_superseded_retention_days
    expired, superseded = await repository.cleanup(now=now, superseded_retention_days=retention)
    if expired or superseded:
        logger.info(f"Memory maintenance removed {expired} expired and {superseded} superseded records")
    return expired, superseded
