"""
Channel session repository.

A session is keyed by (channel, chat, user) and refreshed on every inbound
message, which also pushes its expiry forward.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from ..connection import get_database
from ..exceptions import DatabaseOperationError
from ..models import ChannelSessionDB, SessionStatusEnum, new_id

logger = logging.getLogger(__name__)


class SessionRepository:
    """Repository for channel sessions."""

    def __init__(self):
        self.db = get_database()

    async def upsert(
        self,
        chat_id: str,
        user_id: str,
        now: datetime,
        expires_at: datetime,
        channel: str = "telegram",
    ) -> str:
        """Create the session or refresh its activity and TTL. Returns the session id."""
        async with self.db.session() as session:
            try:
                stmt = (
                    pg_insert(ChannelSessionDB)
                    .values(
                        id=new_id(),
                        channel=channel,
                        channel_chat_id=chat_id,
                        channel_user_id=user_id,
                        status=SessionStatusEnum.ACTIVE.value,
                        last_activity_at=now,
                        expires_at=expires_at,
                    )
                    .on_conflict_do_update(
                        constraint="uq_session_channel_chat_user",
                        set_={
                            "status": SessionStatusEnum.ACTIVE.value,
                            "last_activity_at": now,
                            "expires_at": expires_at,
                        },
                    )
                    .returning(ChannelSessionDB.id)
                )
                result = await session.execute(stmt)
                return result.scalar_one()
            except Exception as e:
                logger.error(f"Error upserting session for chat {chat_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to upsert session: {e}") from e

    async def get_chat_id(self, session_id: str) -> Optional[str]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ChannelSessionDB.channel_chat_id).where(ChannelSessionDB.id == session_id)
            )
            return result.scalar_one_or_none()

    async def get_last_connectors(self, session_id: str) -> List[str]:
        """Connector uids most recently resolved for this session."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ChannelSessionDB.last_connector_uids).where(ChannelSessionDB.id == session_id)
            )
            value = result.scalar_one_or_none()
            return list(value) if value else []

    async def set_last_connectors(self, session_id: str, connector_uids: List[str]) -> None:
        async with self.db.session() as session:
            await session.execute(
                update(ChannelSessionDB)
                .where(ChannelSessionDB.id == session_id)
                .values(last_connector_uids=list(connector_uids))
            )


# Singleton
_session_repository: Optional[SessionRepository] = None


def get_session_repository() -> SessionRepository:
    global _session_repository
    if _session_repository is None:
        _session_repository = SessionRepository()
    return _session_repository
