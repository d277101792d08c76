"""
Webhook idempotency ledger.

insert_if_new is the only concurrency guard for provider webhook delivery:
a second insert of the same event_id is a no-op and reports False.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from ..connection import get_database
from ..exceptions import DatabaseOperationError
from ..models import WebhookEventDB, WebhookProcessStatusEnum, new_id
from ...models.events import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookEventRepository:
    """Repository for the provider webhook ledger."""

    def __init__(self):
        self.db = get_database()

    async def insert_if_new(self, event: WebhookEvent, received_at: datetime, expires_at: datetime) -> bool:
        """Record the event. Returns False when the event id was already recorded."""
        async with self.db.session() as session:
            try:
                stmt = (
                    pg_insert(WebhookEventDB)
                    .values(
                        id=new_id(),
                        event_id=event.event_id,
                        event_type=event.event_type.value,
                        task_id=event.task_id,
                        process_status=WebhookProcessStatusEnum.PENDING.value,
                        payload=event.payload,
                        received_at=received_at,
                        expires_at=expires_at,
                    )
                    .on_conflict_do_nothing(index_elements=[WebhookEventDB.event_id])
                    .returning(WebhookEventDB.id)
                )
                result = await session.execute(stmt)
                return result.scalar_one_or_none() is not None
            except Exception as e:
                logger.error(f"Error recording webhook event {event.event_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to record webhook event: {e}") from e

    async def _set_status(self, event_id: str, status: str, now: datetime, error: Optional[str] = None) -> None:
        async with self.db.session() as session:
            await session.execute(
                update(WebhookEventDB)
                .where(WebhookEventDB.event_id == event_id)
                .values(process_status=status, processed_at=now, error=error)
            )

    async def mark_processed(self, event_id: str, now: datetime) -> None:
        await self._set_status(event_id, WebhookProcessStatusEnum.PROCESSED.value, now)

    async def mark_ignored(self, event_id: str, now: datetime) -> None:
        await self._set_status(event_id, WebhookProcessStatusEnum.IGNORED.value, now)

    async def mark_failed(self, event_id: str, now: datetime, error: str) -> None:
        await self._set_status(event_id, WebhookProcessStatusEnum.FAILED.value, now, error=error[:2000])

    async def list_for_task(self, task_id: str, limit: int = 50) -> List[WebhookEventDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(WebhookEventDB)
                .where(WebhookEventDB.task_id == task_id)
                .order_by(WebhookEventDB.received_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())


# Singleton
_webhook_event_repository: Optional[WebhookEventRepository] = None


def get_webhook_event_repository() -> WebhookEventRepository:
    global _webhook_event_repository
    if _webhook_event_repository is None:
        _webhook_event_repository = WebhookEventRepository()
    return _webhook_event_repository
