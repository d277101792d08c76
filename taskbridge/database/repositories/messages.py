"""
Message repository.

Inbound rows are immutable once created apart from routing audit fields.
Outbound rows are append-only. The partial unique index on
channel_message_id is the dedup backstop for concurrent deliveries.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ..models import MessageDB, MessageDirectionEnum, new_id

logger = logging.getLogger(__name__)


class MessageRepository:
    """Repository for inbound and outbound chat messages."""

    def __init__(self):
        self.db = get_database()

    async def has_channel_message(self, channel_message_id: str) -> bool:
        """Whether an inbound message with this channel id was already stored."""
        async with self.db.session() as session:
            result = await session.execute(
                select(MessageDB.id).where(MessageDB.channel_message_id == channel_message_id).limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def insert_inbound(
        self,
        session_id: str,
        channel_message_id: str,
        sender_id: str,
        content_text: Optional[str],
        content_json: Optional[Dict[str, Any]],
        created_at: datetime,
        expires_at: datetime,
    ) -> Optional[str]:
        """
        Insert an inbound message.

        Returns the new message id, or None when another row already holds
        the same channel_message_id.
        """
        async with self.db.session() as session:
            try:
                stmt = (
                    pg_insert(MessageDB)
                    .values(
                        id=new_id(),
                        session_id=session_id,
                        direction=MessageDirectionEnum.INBOUND.value,
                        channel_message_id=channel_message_id,
                        sender_id=sender_id,
                        content_text=content_text,
                        content_json=content_json,
                        created_at=created_at,
                        expires_at=expires_at,
                    )
                    .on_conflict_do_nothing(
                        index_elements=[MessageDB.channel_message_id],
                        index_where=MessageDB.channel_message_id.isnot(None),
                    )
                    .returning(MessageDB.id)
                )
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
            except Exception as e:
                logger.error(f"Error inserting inbound message {channel_message_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to insert inbound message: {e}") from e

    async def create_outbound(
        self,
        session_id: str,
        content_text: str,
        created_at: datetime,
        expires_at: datetime,
        task_id: Optional[str] = None,
        content_json: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Record a message sent to the user. Returns the message id."""
        async with self.db.session() as session:
            try:
                message = MessageDB(
                    id=new_id(),
                    session_id=session_id,
                    direction=MessageDirectionEnum.OUTBOUND.value,
                    content_text=content_text,
                    content_json=content_json,
                    task_id=task_id,
                    created_at=created_at,
                    expires_at=expires_at,
                )
                session.add(message)
                await session.flush()
                return message.id
            except IntegrityError as e:
                logger.error(f"Constraint violation recording outbound message: {e}", exc_info=True)
                raise DatabaseConstraintError(f"Failed to record outbound message: {e}") from e
            except Exception as e:
                logger.error(f"Error recording outbound message: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to record outbound message: {e}") from e

    async def persist_route_decision(
        self,
        message_id: str,
        action: str,
        reason: str,
        task_id: Optional[str] = None,
    ) -> None:
        """Store the routing outcome on the inbound message (audit trail)."""
        async with self.db.session() as session:
            await session.execute(
                update(MessageDB)
                .where(MessageDB.id == message_id)
                .values(route_action=action, route_reason=reason, task_id=task_id)
            )

    async def link_to_task(self, message_id: str, task_id: str, reason: str) -> None:
        """Attach an inbound message to the task it created."""
        async with self.db.session() as session:
            await session.execute(
                update(MessageDB)
                .where(MessageDB.id == message_id)
                .values(task_id=task_id, route_action="new", route_reason=reason)
            )


# Singleton
_message_repository: Optional[MessageRepository] = None


def get_message_repository() -> MessageRepository:
    global _message_repository
    if _message_repository is None:
        _message_repository = MessageRepository()
    return _message_repository
