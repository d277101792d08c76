"""
Task repository.

Status transitions are written as conditional updates so that late or
out-of-order callbacks cannot move a task out of a terminal state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ..models import (
    ACTIVE_TASK_STATUSES,
    ChannelSessionDB,
    StopReasonEnum,
    TaskDB,
    TaskStatusEnum,
    new_id,
)
from ...models.routing import ActiveTask

logger = logging.getLogger(__name__)


@dataclass
class StaleTask:
    """A pending/running task that has gone quiet."""
    task_id: str
    session_id: str
    chat_id: str
    created_at: datetime


class TaskRepository:
    """Repository for provider tasks."""

    def __init__(self):
        self.db = get_database()

    async def create(
        self,
        session_id: str,
        provider_task_id: str,
        title: str,
        original_prompt: str,
        created_by_message_id: str,
        now: datetime,
        expires_at: datetime,
        url: Optional[str] = None,
        connector_uids: Optional[List[str]] = None,
    ) -> TaskDB:
        """Persist a newly opened task in `pending` state.

        Raises:
            DatabaseConstraintError: If the provider task id is already stored
            DatabaseOperationError: If database operation fails
        """
        async with self.db.session() as session:
            try:
                task = TaskDB(
                    id=new_id(),
                    session_id=session_id,
                    provider_task_id=provider_task_id,
                    status=TaskStatusEnum.PENDING.value,
                    title=title,
                    original_prompt=original_prompt,
                    url=url,
                    created_by_message_id=created_by_message_id,
                    connector_uids=connector_uids or [],
                    created_at=now,
                    updated_at=now,
                    expires_at=expires_at,
                )
                session.add(task)
                await session.flush()

                logger.info(f"Created task {provider_task_id} for session {session_id}")
                return task

            except IntegrityError as e:
                logger.error(f"Constraint violation creating task {provider_task_id}: {e}", exc_info=True)
                raise DatabaseConstraintError(f"Task {provider_task_id} already exists") from e
            except Exception as e:
                logger.error(f"Error creating task {provider_task_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create task: {e}") from e

    async def get_by_provider_id(self, provider_task_id: str) -> Optional[TaskDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(TaskDB).where(TaskDB.provider_task_id == provider_task_id)
            )
            return result.scalar_one_or_none()

    async def list_active_for_session(self, session_id: str) -> List[ActiveTask]:
        """Tasks in pending/running/waiting_user for the session, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(TaskDB)
                .where(
                    and_(
                        TaskDB.session_id == session_id,
                        TaskDB.status.in_(ACTIVE_TASK_STATUSES),
                    )
                )
                .order_by(TaskDB.updated_at.desc())
            )
            return [
                ActiveTask(
                    task_id=task.provider_task_id,
                    title=task.title,
                    original_prompt=task.original_prompt,
                    status=task.status,
                    last_message=task.last_message,
                    stop_reason=task.stop_reason,
                )
                for task in result.scalars().all()
            ]

    async def _update(self, provider_task_id: str, condition, values: dict) -> bool:
        async with self.db.session() as session:
            clauses = [TaskDB.provider_task_id == provider_task_id]
            if condition is not None:
                clauses.append(condition)
            result = await session.execute(update(TaskDB).where(and_(*clauses)).values(**values))
            return result.rowcount > 0

    async def mark_created(
        self,
        provider_task_id: str,
        now: datetime,
        title: Optional[str] = None,
        url: Optional[str] = None,
    ) -> bool:
        """Provider confirmed the task: pending -> running."""
        values = {"status": TaskStatusEnum.RUNNING.value, "updated_at": now, "last_webhook_at": now}
        if title:
            values["title"] = title
        if url:
            values["url"] = url
        return await self._update(
            provider_task_id,
            TaskDB.status.in_((TaskStatusEnum.PENDING.value, TaskStatusEnum.RUNNING.value)),
            values,
        )

    async def apply_progress(self, provider_task_id: str, message: str, now: datetime) -> bool:
        """Record a progress message unless the task is terminal or waiting on the user."""
        return await self._update(
            provider_task_id,
            TaskDB.status.in_((TaskStatusEnum.PENDING.value, TaskStatusEnum.RUNNING.value)),
            {
                "status": TaskStatusEnum.RUNNING.value,
                "last_message": message,
                "updated_at": now,
                "last_webhook_at": now,
            },
        )

    async def mark_waiting_user(
        self,
        provider_task_id: str,
        now: datetime,
        message: Optional[str] = None,
        title: Optional[str] = None,
        url: Optional[str] = None,
    ) -> bool:
        values = {
            "status": TaskStatusEnum.WAITING_USER.value,
            "stop_reason": StopReasonEnum.ASK.value,
            "last_message": message,
            "updated_at": now,
            "last_webhook_at": now,
        }
        if title:
            values["title"] = title
        if url:
            values["url"] = url
        return await self._update(provider_task_id, None, values)

    async def mark_completed(
        self,
        provider_task_id: str,
        now: datetime,
        message: Optional[str] = None,
        title: Optional[str] = None,
        url: Optional[str] = None,
    ) -> bool:
        values = {
            "status": TaskStatusEnum.COMPLETED.value,
            "stop_reason": StopReasonEnum.FINISH.value,
            "last_message": message,
            "updated_at": now,
            "stopped_at": now,
            "last_webhook_at": now,
        }
        if title:
            values["title"] = title
        if url:
            values["url"] = url
        return await self._update(provider_task_id, None, values)

    async def mark_running(self, provider_task_id: str, now: datetime) -> bool:
        """A follow-up was sent for a task waiting on the user."""
        return await self._update(
            provider_task_id,
            TaskDB.status == TaskStatusEnum.WAITING_USER.value,
            {"status": TaskStatusEnum.RUNNING.value, "stop_reason": None, "updated_at": now},
        )

    async def mark_failed(self, provider_task_id: str, reason: str, now: datetime) -> bool:
        """Fail a pending/running task. Returns False if it had already moved on."""
        return await self._update(
            provider_task_id,
            TaskDB.status.in_((TaskStatusEnum.PENDING.value, TaskStatusEnum.RUNNING.value)),
            {
                "status": TaskStatusEnum.FAILED.value,
                "stop_reason": None,
                "last_message": reason,
                "updated_at": now,
                "stopped_at": now,
            },
        )

    async def mark_completed_from_lookup(
        self, provider_task_id: str, now: datetime, message: Optional[str] = None
    ) -> bool:
        """Apply a completion discovered by polling the provider."""
        return await self._update(
            provider_task_id,
            TaskDB.status.in_((TaskStatusEnum.PENDING.value, TaskStatusEnum.RUNNING.value)),
            {
                "status": TaskStatusEnum.COMPLETED.value,
                "stop_reason": StopReasonEnum.FINISH.value,
                "last_message": message,
                "updated_at": now,
                "stopped_at": now,
            },
        )

    async def mark_checked(self, provider_task_id: str, now: datetime) -> None:
        await self._update(provider_task_id, None, {"last_checked_at": now})

    async def list_stale(self, cutoff: datetime, limit: int = 200) -> List[StaleTask]:
        """
        Pending/running tasks untouched since ``cutoff``, with no webhook and
        no provider check since then either.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(
                    TaskDB.provider_task_id,
                    TaskDB.session_id,
                    ChannelSessionDB.channel_chat_id,
                    TaskDB.created_at,
                )
                .join(ChannelSessionDB, ChannelSessionDB.id == TaskDB.session_id)
                .where(
                    and_(
                        TaskDB.status.in_((TaskStatusEnum.PENDING.value, TaskStatusEnum.RUNNING.value)),
                        TaskDB.updated_at < cutoff,
                        or_(TaskDB.last_webhook_at.is_(None), TaskDB.last_webhook_at < cutoff),
                        or_(TaskDB.last_checked_at.is_(None), TaskDB.last_checked_at < cutoff),
                    )
                )
                .order_by(TaskDB.updated_at.asc())
                .limit(limit)
            )
            return [
                StaleTask(task_id=row[0], session_id=row[1], chat_id=row[2], created_at=row[3])
                for row in result.all()
            ]


# Singleton
_task_repository: Optional[TaskRepository] = None


def get_task_repository() -> TaskRepository:
    global _task_repository
    if _task_repository is None:
        _task_repository = TaskRepository()
    return _task_repository
