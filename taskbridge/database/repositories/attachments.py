"""Attachment metadata repository."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ..models import AttachmentDB, new_id

logger = logging.getLogger(__name__)


class AttachmentRepository:
    """Repository for files delivered with finished tasks."""

    def __init__(self):
        self.db = get_database()

    async def create(
        self,
        task_id: str,
        event_id: str,
        file_name: str,
        url: str,
        size_bytes: int,
        mime_type: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> str:
        async with self.db.session() as session:
            try:
                attachment = AttachmentDB(
                    id=new_id(),
                    task_id=task_id,
                    event_id=event_id,
                    file_name=file_name,
                    url=url,
                    size_bytes=size_bytes,
                    mime_type=mime_type,
                    created_at=created_at,
                    expires_at=expires_at,
                )
                session.add(attachment)
                await session.flush()
                return attachment.id
            except IntegrityError as e:
                logger.error(f"Constraint violation storing attachment {file_name}: {e}", exc_info=True)
                raise DatabaseConstraintError(f"Failed to store attachment {file_name}") from e
            except Exception as e:
                logger.error(f"Error storing attachment {file_name}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to store attachment: {e}") from e

    async def list_for_task(self, task_id: str) -> List[AttachmentDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(AttachmentDB).where(AttachmentDB.task_id == task_id).order_by(AttachmentDB.created_at)
            )
            return list(result.scalars().all())


# Singleton
_attachment_repository: Optional[AttachmentRepository] = None


def get_attachment_repository() -> AttachmentRepository:
    global _attachment_repository
    if _attachment_repository is None:
        _attachment_repository = AttachmentRepository()
    return _attachment_repository
