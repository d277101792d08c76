"""
Cleanup and reconciliation job.

Phase 1 deletes expired rows in child-before-parent order, in bounded
batches. Phase 2 looks up tasks that went quiet without a terminal webhook
and settles them from the provider's view. Phase 3 prunes memories.

A stale task is only failed locally when the provider says it does not
exist or it has outlived the hard ceiling; transient lookup errors leave it
for the next pass.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from pydantic import BaseModel, Field

from config import settings
from ..database.repositories.cleanup import CLEANUP_TABLE_ORDER
from ..database.repositories.tasks import StaleTask
from ..integrations.task_provider import TaskProviderError
from ..memory.maintenance import run_memory_maintenance
from ..utils.datetime_utils import days_from, ensure_aware, minutes_ago, utc_now

logger = logging.getLogger(__name__)

STALE_TIMEOUT_REASON = "Task timed out due to inactivity"
PROVIDER_MISSING_REASON = "Task not found on provider"


def stale_task_notice(task_id: str) -> str:
    return f"Task {task_id} timed out due to inactivity. Please send another message if you want me to retry."


def failed_task_notice(task_id: str, error: Optional[str]) -> str:
    detail = f": {error}" if error else "."
    return f"Task {task_id} failed{detail} Please send another message if you want me to retry."


class CleanupSummary(BaseModel):
    expired_deletes: Dict[str, int] = Field(default_factory=lambda: {t: 0 for t in CLEANUP_TABLE_ORDER})
    stale_tasks_checked: int = 0
    stale_tasks_completed: int = 0
    stale_tasks_marked_failed: int = 0
    stale_tasks_still_running: int = 0
    stale_task_lookup_errors: int = 0
    memories_expired: int = 0
    memories_superseded: int = 0


class CleanupJob:
    def __init__(
        self,
        cleanup_repository,
        task_repository,
        message_repository,
        outbound,
        provider=None,
        memory_repository=None,
        batch_size: Optional[int] = None,
        max_batches_per_table: Optional[int] = None,
        stale_timeout_minutes: Optional[int] = None,
        hard_ceiling_hours: Optional[int] = None,
    ):
        self.cleanup = cleanup_repository
        self.tasks = task_repository
        self.messages = message_repository
        self.outbound = outbound
        self.provider = provider
        self.memories = memory_repository
        self.batch_size = batch_size or settings.cleanup_batch_size
        self.max_batches_per_table = max_batches_per_table or settings.cleanup_max_batches_per_table
        self.stale_timeout_minutes = stale_timeout_minutes or settings.stale_task_timeout_minutes
        self.hard_ceiling_hours = hard_ceiling_hours or settings.stale_task_hard_ceiling_hours

    async def run(self, now: Optional[datetime] = None) -> CleanupSummary:
        now = now or utc_now()
        summary = CleanupSummary()

        await self._sweep_expired(now, summary)
        await self._reconcile_stale_tasks(now, summary)
        if self.memories is not None:
            expired, superseded = await run_memory_maintenance(self.memories, now)
            summary.memories_expired = expired
            summary.memories_superseded = superseded

        logger.info(f"Cleanup finished: {summary.model_dump()}")
        return summary

    # ==================== TTL SWEEP ====================

    async def _sweep_expired(self, now: datetime, summary: CleanupSummary) -> None:
        for table in CLEANUP_TABLE_ORDER:
            for _ in range(self.max_batches_per_table):
                deleted = await self.cleanup.delete_expired(table, now, self.batch_size)
                summary.expired_deletes[table] += deleted
                if deleted < self.batch_size:
                    break
            else:
                logger.warning(f"Cleanup of {table} hit the batch limit; remaining rows wait for the next run")

    # ==================== RECONCILIATION ====================

    async def _reconcile_stale_tasks(self, now: datetime, summary: CleanupSummary) -> None:
        cutoff = minutes_ago(now, self.stale_timeout_minutes)
        stale_tasks = await self.tasks.list_stale(cutoff)
        if stale_tasks:
            logger.info(f"Reconciling {len(stale_tasks)} stale task(s)")

        for stale in stale_tasks:
            summary.stale_tasks_checked += 1
            await self._reconcile(stale, now, summary)

    def _past_ceiling(self, stale: StaleTask, now: datetime) -> bool:
        return ensure_aware(stale.created_at) < now - timedelta(hours=self.hard_ceiling_hours)

    async def _reconcile(self, stale: StaleTask, now: datetime, summary: CleanupSummary) -> None:
        past_ceiling = self._past_ceiling(stale, now)

        if self.provider is None:
            if past_ceiling:
                await self._fail(stale, STALE_TIMEOUT_REASON, stale_task_notice(stale.task_id), now, summary)
            return

        try:
            status = await self.provider.get_task(stale.task_id)
        except TaskProviderError as e:
            if e.is_not_found:
                await self._fail(stale, PROVIDER_MISSING_REASON, stale_task_notice(stale.task_id), now, summary)
            elif past_ceiling:
                await self._fail(stale, STALE_TIMEOUT_REASON, stale_task_notice(stale.task_id), now, summary)
            else:
                summary.stale_task_lookup_errors += 1
                logger.warning(f"Lookup of stale task {stale.task_id} failed, retrying next run: {e}")
            return

        if status.status == "completed":
            updated = await self.tasks.mark_completed_from_lookup(stale.task_id, now, message=status.output_text)
            if updated:
                summary.stale_tasks_completed += 1
                if status.output_text:
                    await self._notify(stale, status.output_text, "task_finish_reconciled", now)
            return

        if status.status == "failed":
            reason = status.error or "Task failed on provider"
            await self._fail(stale, reason, failed_task_notice(stale.task_id, status.error), now, summary)
            return

        if past_ceiling:
            await self._fail(stale, STALE_TIMEOUT_REASON, stale_task_notice(stale.task_id), now, summary)
            return

        await self.tasks.mark_checked(stale.task_id, now)
        summary.stale_tasks_still_running += 1

    async def _fail(self, stale: StaleTask, reason: str, notice: str, now: datetime, summary: CleanupSummary) -> None:
        # Conditional update: a task that moved on meanwhile is left alone and nobody is notified twice
        if not await self.tasks.mark_failed(stale.task_id, reason, now):
            return
        summary.stale_tasks_marked_failed += 1
        logger.info(f"Marked stale task {stale.task_id} failed: {reason}")
        await self._notify(stale, notice, "stale_task_notice", now)

    async def _notify(self, stale: StaleTask, text: str, kind: str, now: datetime) -> None:
        await self.outbound.send_text(stale.chat_id, text)
        await self.messages.create_outbound(
            session_id=stale.session_id,
            content_text=text,
            created_at=now,
            expires_at=days_from(now, settings.message_ttl_days),
            task_id=stale.task_id,
            content_json={"provider": "telegram", "type": kind, "task_id": stale.task_id},
        )
