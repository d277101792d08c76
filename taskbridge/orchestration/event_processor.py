"""
Webhook event processor.

Applies provider lifecycle events to task state and delivers the resulting
replies. The webhook handler guarantees each event id reaches ``process`` at
most once; this module only has to keep late or out-of-order events from
resurrecting finished tasks.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from config import settings
from ..models.channel import OutboundMedia
from ..models.events import StopReason, WebhookEvent, WebhookEventType
from ..utils.datetime_utils import days_from, utc_now

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_BY_EXTENSION = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".pdf": "application/pdf",
    ".csv": "text/csv",
    ".txt": "text/plain",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def mime_from_extension(file_name: str) -> str:
    _, extension = os.path.splitext((file_name or "").lower())
    return MIME_BY_EXTENSION.get(extension, DEFAULT_MIME_TYPE)


def resolve_mime_type(content_type: Optional[str], file_name: str) -> str:
    """Transport content type wins; the file extension is the fallback."""
    if content_type:
        mime = content_type.split(";")[0].strip().lower()
        if mime:
            return mime
    return mime_from_extension(file_name)


class ProcessOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"


@dataclass
class DeliveryContext:
    session_id: str
    chat_id: str
    original_prompt: str
    title: Optional[str]
    created_by_message_id: Optional[str]


class EventProcessor:
    def __init__(
        self,
        task_repository,
        session_repository,
        message_repository,
        attachment_repository,
        outbound,
        downloader,
        personality=None,
        memory_service=None,
        send_progress_updates: Optional[bool] = None,
    ):
        self.tasks = task_repository
        self.sessions = session_repository
        self.messages = message_repository
        self.attachments = attachment_repository
        self.outbound = outbound
        # Anything with ``download(url) -> (bytes, content_type)``
        self.downloader = downloader
        self.personality = personality
        self.memory_service = memory_service
        self.send_progress_updates = (
            settings.send_progress_updates if send_progress_updates is None else send_progress_updates
        )

    async def process(self, event: WebhookEvent, now: Optional[datetime] = None) -> ProcessOutcome:
        now = now or utc_now()

        if event.event_type == WebhookEventType.TASK_CREATED:
            return await self._on_created(event, now)
        if event.event_type == WebhookEventType.TASK_PROGRESS:
            return await self._on_progress(event, now)
        if event.task_detail is None:
            raise ValueError("task_stopped event missing task_detail")
        if event.task_detail.stop_reason == StopReason.ASK:
            return await self._on_ask(event, now)
        return await self._on_finish(event, now)

    async def _delivery_context(self, task_id: str) -> Optional[DeliveryContext]:
        task = await self.tasks.get_by_provider_id(task_id)
        if task is None:
            return None
        chat_id = await self.sessions.get_chat_id(task.session_id)
        if not chat_id:
            return None
        return DeliveryContext(
            session_id=task.session_id,
            chat_id=chat_id,
            original_prompt=task.original_prompt,
            title=task.title,
            created_by_message_id=task.created_by_message_id,
        )

    async def _reply(self, event: WebhookEvent, context: DeliveryContext, text: str, kind: str, now: datetime) -> None:
        await self.outbound.send_text(context.chat_id, text)
        await self.messages.create_outbound(
            session_id=context.session_id,
            content_text=text,
            created_at=now,
            expires_at=days_from(now, settings.message_ttl_days),
            task_id=event.task_id,
            content_json={"provider": "telegram", "type": kind, "event_id": event.event_id},
        )

    # ==================== EVENT TYPES ====================

    async def _on_created(self, event: WebhookEvent, now: datetime) -> ProcessOutcome:
        detail = event.task_detail
        updated = await self.tasks.mark_created(
            event.task_id,
            now,
            title=detail.task_title if detail else None,
            url=detail.task_url if detail else None,
        )
        if not updated:
            logger.info(f"task_created for {event.task_id} ignored (unknown or already past running)")
            return ProcessOutcome.IGNORED
        return ProcessOutcome.PROCESSED

    async def _on_progress(self, event: WebhookEvent, now: datetime) -> ProcessOutcome:
        message = event.progress_detail.message if event.progress_detail else ""
        updated = await self.tasks.apply_progress(event.task_id, message, now)
        if not updated:
            logger.info(f"task_progress for {event.task_id} ignored (unknown, terminal or waiting on user)")
            return ProcessOutcome.IGNORED

        if self.send_progress_updates and message:
            context = await self._delivery_context(event.task_id)
            if context is not None:
                await self._reply(event, context, message, "task_progress", now)
        return ProcessOutcome.PROCESSED

    async def _on_ask(self, event: WebhookEvent, now: datetime) -> ProcessOutcome:
        detail = event.task_detail
        updated = await self.tasks.mark_waiting_user(
            event.task_id, now, message=detail.message, title=detail.task_title, url=detail.task_url
        )
        if not updated:
            logger.warning(f"task_stopped/ask for unknown task {event.task_id}")
            return ProcessOutcome.IGNORED

        context = await self._delivery_context(event.task_id)
        if context is None or not detail.message:
            return ProcessOutcome.PROCESSED

        await self._reply(event, context, detail.message, "task_ask", now)
        return ProcessOutcome.PROCESSED

    async def _on_finish(self, event: WebhookEvent, now: datetime) -> ProcessOutcome:
        detail = event.task_detail
        updated = await self.tasks.mark_completed(
            event.task_id, now, message=detail.message, title=detail.task_title, url=detail.task_url
        )
        if not updated:
            logger.warning(f"task_stopped/finish for unknown task {event.task_id}")
            return ProcessOutcome.IGNORED

        context = await self._delivery_context(event.task_id)
        if context is None:
            return ProcessOutcome.PROCESSED

        if detail.message:
            framed = None
            if self.personality is not None:
                framed = await self.personality.frame_task_result(detail.message)
            await self._reply(event, context, framed or detail.message, "task_finish", now)

        # Sequential; a failed download propagates so the ledger marks the event failed
        for attachment in detail.attachments:
            data, content_type = await self.downloader.download(attachment.url)
            mime_type = resolve_mime_type(content_type, attachment.file_name)
            await self.outbound.send_media(
                context.chat_id,
                OutboundMedia(data=data, mime_type=mime_type, file_name=attachment.file_name),
            )
            await self.attachments.create(
                task_id=event.task_id,
                event_id=event.event_id,
                file_name=attachment.file_name,
                url=attachment.url,
                size_bytes=attachment.size_bytes,
                mime_type=mime_type,
                created_at=now,
                expires_at=days_from(now, settings.attachment_ttl_days),
            )

        await self._extract_memories(event, context, now)
        return ProcessOutcome.PROCESSED

    async def _extract_memories(self, event: WebhookEvent, context: DeliveryContext, now: datetime) -> None:
        if self.memory_service is None or not event.task_detail.message:
            return
        try:
            await self.memory_service.extract_from_task(
                source_task_id=event.task_id,
                user_request=context.original_prompt,
                task_title=event.task_detail.task_title or context.title,
                task_result=event.task_detail.message,
                now=now,
                source_message_id=context.created_by_message_id,
            )
        except Exception as e:
            logger.warning(f"Memory extraction for task {event.task_id} failed: {e}")
