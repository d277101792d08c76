"""
TTL sweep queries for the cleanup job.

Rows are deleted in bounded batches. Parents (tasks, sessions) are only
deleted once no child row still references them, so the sweep never breaks
ownership even when a child outlives its parent's TTL.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, delete, exists, select

from ..connection import get_database
from ..models import (
    AttachmentDB,
    ChannelSessionDB,
    MessageDB,
    TaskDB,
    WebhookEventDB,
)

logger = logging.getLogger(__name__)


# Strict child-before-parent order
CLEANUP_TABLE_ORDER = (
    "messages",
    "attachments",
    "webhook_events",
    "tasks",
    "channel_sessions",
)


class CleanupRepository:
    """Batched deletion of expired rows."""

    def __init__(self):
        self.db = get_database()

    def _expired_ids_query(self, table: str, now: datetime, batch_size: int):
        if table == "messages":
            return select(MessageDB.id).where(MessageDB.expires_at < now).limit(batch_size), MessageDB

        if table == "attachments":
            return select(AttachmentDB.id).where(AttachmentDB.expires_at < now).limit(batch_size), AttachmentDB

        if table == "webhook_events":
            return select(WebhookEventDB.id).where(WebhookEventDB.expires_at < now).limit(batch_size), WebhookEventDB

        if table == "tasks":
            has_messages = exists().where(MessageDB.task_id == TaskDB.provider_task_id)
            has_attachments = exists().where(AttachmentDB.task_id == TaskDB.provider_task_id)
            has_events = exists().where(WebhookEventDB.task_id == TaskDB.provider_task_id)
            query = (
                select(TaskDB.id)
                .where(and_(TaskDB.expires_at < now, ~has_messages, ~has_attachments, ~has_events))
                .limit(batch_size)
            )
            return query, TaskDB

        if table == "channel_sessions":
            has_messages = exists().where(MessageDB.session_id == ChannelSessionDB.id)
            has_tasks = exists().where(TaskDB.session_id == ChannelSessionDB.id)
            query = (
                select(ChannelSessionDB.id)
                .where(and_(ChannelSessionDB.expires_at < now, ~has_messages, ~has_tasks))
                .limit(batch_size)
            )
            return query, ChannelSessionDB

        raise ValueError(f"Unknown table for cleanup: {table}")

    async def delete_expired(self, table: str, now: datetime, batch_size: int) -> int:
        """Delete up to ``batch_size`` expired rows from ``table``. Returns rows deleted."""
        query, model = self._expired_ids_query(table, now, batch_size)

        async with self.db.session() as session:
            result = await session.execute(query)
            ids = [row[0] for row in result.all()]
            if not ids:
                return 0

            deleted = await session.execute(delete(model).where(model.id.in_(ids)))
            count = deleted.rowcount or 0
            logger.debug(f"Deleted {count} expired row(s) from {table}")
            return count


# Singleton
_cleanup_repository: Optional[CleanupRepository] = None


def get_cleanup_repository() -> CleanupRepository:
    global _cleanup_repository
    if _cleanup_repository is None:
        _cleanup_repository = CleanupRepository()
    return _cleanup_repository
