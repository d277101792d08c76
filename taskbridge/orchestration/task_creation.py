"""
Task creation workflow.

Opens a provider task for an inbound message, persists it, links the message
and acknowledges the user. Steps run in order; if the provider call fails
nothing is persisted and nothing is sent.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from config import settings
from ..memory.retrieval import get_memories_for_task_prompt
from ..models.channel import MediaAttachment
from ..utils.datetime_utils import days_from, utc_now

logger = logging.getLogger(__name__)

PROMPT_FOR_MEDIA = "Please help with the attached media from the user."
PROMPT_FOR_EMPTY_MESSAGE = "User sent an empty message. Ask for clarification and help further."
DEFAULT_TITLE = "your request"
TITLE_MAX_LENGTH = 60


def resolve_prompt(text: Optional[str], attachments: Sequence[MediaAttachment]) -> str:
    trimmed = (text or "").strip()
    if trimmed:
        return trimmed
    if attachments:
        return PROMPT_FOR_MEDIA
    return PROMPT_FOR_EMPTY_MESSAGE


def title_from_prompt(prompt: str) -> str:
    compact = re.sub(r"\s+", " ", prompt or "").strip()
    if not compact:
        return DEFAULT_TITLE
    if len(compact) <= TITLE_MAX_LENGTH:
        return compact
    return f"{compact[:TITLE_MAX_LENGTH - 3]}..."


def build_ack_text(title: str) -> str:
    return f'Got it - working on "{title}" now.'


@dataclass
class TaskCreationResult:
    task_id: str
    title: str
    url: Optional[str]
    ack_message_id: str
    ack_text: str


class TaskCreationWorkflow:
    def __init__(
        self,
        provider,
        task_repository,
        message_repository,
        outbound,
        personality=None,
        memory_repository=None,
    ):
        self.provider = provider
        self.tasks = task_repository
        self.messages = message_repository
        self.outbound = outbound
        self.personality = personality
        self.memories = memory_repository

    async def _provider_prompt(self, prompt: str, now: datetime) -> str:
        """Prepend what we know about the user. Retrieval problems never block task creation."""
        if self.memories is None:
            return prompt
        try:
            _, context_block = await get_memories_for_task_prompt(self.memories, now)
        except Exception as e:
            logger.warning(f"Memory retrieval for task prompt failed: {e}")
            return prompt
        if not context_block:
            return prompt
        return f"{context_block}\n\n{prompt}"

    async def _ack_text(self, title: str) -> str:
        if self.personality is not None:
            rendered = await self.personality.build_task_acknowledgement(title)
            if rendered:
                return rendered
        return build_ack_text(title)

    async def create_from_inbound(
        self,
        session_id: str,
        inbound_message_id: str,
        chat_id: str,
        text: Optional[str],
        attachments: Sequence[MediaAttachment],
        route_reason: str,
        connectors: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
    ) -> TaskCreationResult:
        """
        Open a provider task for a stored inbound message.

        Raises:
            TaskProviderError: If the provider rejects or cannot be reached.
                Nothing has been persisted or sent in that case.
        """
        now = now or utc_now()
        prompt = resolve_prompt(text, attachments)

        created = await self.provider.create_task(
            await self._provider_prompt(prompt, now),
            attachments=attachments,
            connectors=connectors,
        )
        title = (created.title or "").strip() or title_from_prompt(prompt)

        await self.tasks.create(
            session_id=session_id,
            provider_task_id=created.task_id,
            title=title,
            original_prompt=prompt,
            created_by_message_id=inbound_message_id,
            now=now,
            expires_at=days_from(now, settings.task_ttl_days),
            url=created.url,
            connector_uids=list(connectors or []),
        )
        await self.messages.link_to_task(inbound_message_id, created.task_id, route_reason)

        ack_text = await self._ack_text(title)
        await self.outbound.send_text(chat_id, ack_text)
        ack_message_id = await self.messages.create_outbound(
            session_id=session_id,
            content_text=ack_text,
            created_at=now,
            expires_at=days_from(now, settings.message_ttl_days),
            task_id=created.task_id,
            content_json={
                "provider": "telegram",
                "type": "task_acknowledgement",
                "task_id": created.task_id,
                "task_title": title,
                "task_url": created.url,
            },
        )

        logger.info(f"Task {created.task_id} created for message {inbound_message_id} ({route_reason})")
        return TaskCreationResult(
            task_id=created.task_id,
            title=title,
            url=created.url,
            ack_message_id=ack_message_id,
            ack_text=ack_text,
        )
