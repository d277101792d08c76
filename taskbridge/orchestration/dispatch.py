"""
Inbound dispatch.

Runs one raw channel message through admission (normalize, rate limit,
dedup, persist), explicit memory capture, connector resolution and routing,
then continues a task, opens a new one, or answers locally.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from config import settings
from ..integrations.task_provider import TaskProviderError
from ..memory.retrieval import get_memories_for_local_response
from ..models.channel import InboundStatus, MediaAttachment, NormalizedInbound
from ..models.routing import DispatchResult, DispatchStatus, RouteAction, RouteDecision, ResponseIntent
from ..utils.datetime_utils import days_from, utc_now
from .task_creation import resolve_prompt

logger = logging.getLogger(__name__)

ROUTER_MESSAGE_FOR_MEDIA = "[User sent media attachment]"
ROUTER_MESSAGE_FOR_EMPTY = "[User sent an empty message]"
CONTINUE_TASK_NOT_FOUND_FALLBACK_REASON = "continue_task_not_found_fallback_new"
LOCAL_RESPONSE_ESCALATED_REASON = "local_response_escalated_new"

_INBOUND_TO_DISPATCH = {
    InboundStatus.RATE_LIMITED: DispatchStatus.RATE_LIMITED,
    InboundStatus.DUPLICATE: DispatchStatus.DUPLICATE,
    InboundStatus.IGNORED: DispatchStatus.IGNORED,
}


def resolve_router_message(text: Optional[str], attachments: Sequence[MediaAttachment]) -> str:
    trimmed = (text or "").strip()
    if trimmed:
        return trimmed
    if attachments:
        return ROUTER_MESSAGE_FOR_MEDIA
    return ROUTER_MESSAGE_FOR_EMPTY


class InboundDispatcher:
    def __init__(
        self,
        normalizer,
        router,
        task_creation,
        provider,
        task_repository,
        message_repository,
        outbound,
        connector_resolver=None,
        local_responder=None,
        memory_service=None,
        memory_repository=None,
    ):
        self.normalizer = normalizer
        self.router = router
        self.task_creation = task_creation
        self.provider = provider
        self.tasks = task_repository
        self.messages = message_repository
        self.outbound = outbound
        self.connector_resolver = connector_resolver
        self.local_responder = local_responder
        self.memory_service = memory_service
        self.memories = memory_repository

    async def dispatch(self, raw: Dict[str, Any], now: Optional[datetime] = None) -> DispatchResult:
        now = now or utc_now()
        admitted = await self.normalizer.process(raw, now=now)
        if admitted.status != InboundStatus.STORED:
            return DispatchResult(
                status=_INBOUND_TO_DISPATCH[admitted.status],
                session_id=admitted.session_id,
            )

        message = admitted.message
        await self._capture_explicit_memories(message, admitted.message_id, now)

        await self.outbound.set_typing(message.chat_id, True)
        try:
            return await self._route_and_run(message, admitted.session_id, admitted.message_id, now)
        finally:
            await self.outbound.set_typing(message.chat_id, False)

    async def _capture_explicit_memories(
        self, message: NormalizedInbound, message_id: str, now: datetime
    ) -> None:
        if self.memory_service is None or not message.text:
            return
        try:
            await self.memory_service.capture_explicit(message.text, now, source_message_id=message_id)
        except Exception as e:
            logger.warning(f"Explicit memory capture failed for message {message_id}: {e}")

    async def _resolve_connectors(self, session_id: str, routing_message: str) -> list:
        if self.connector_resolver is None:
            return []
        resolution = await self.connector_resolver.resolve(session_id, routing_message)
        logger.debug(f"Connector resolution for session {session_id}: {resolution.reason}")
        return list(resolution.connector_uids)

    async def _route_and_run(
        self,
        message: NormalizedInbound,
        session_id: str,
        message_id: str,
        now: datetime,
    ) -> DispatchResult:
        active_tasks = await self.tasks.list_active_for_session(session_id)
        routing_message = resolve_router_message(message.text, message.attachments)
        connectors = await self._resolve_connectors(session_id, routing_message)

        decision = await self.router.route(routing_message, active_tasks, message_id=message_id)

        if decision.action == RouteAction.CONTINUE:
            return await self._continue(message, session_id, message_id, decision, connectors, now)
        if decision.action == RouteAction.RESPOND:
            return await self._respond(message, session_id, message_id, decision, routing_message, connectors, now)
        return await self._create(message, session_id, message_id, decision.reason, connectors, now)

    async def _create(
        self,
        message: NormalizedInbound,
        session_id: str,
        message_id: str,
        reason: str,
        connectors: list,
        now: datetime,
    ) -> DispatchResult:
        created = await self.task_creation.create_from_inbound(
            session_id=session_id,
            inbound_message_id=message_id,
            chat_id=message.chat_id,
            text=message.text,
            attachments=message.attachments,
            route_reason=reason,
            connectors=connectors,
            now=now,
        )
        return DispatchResult(
            status=DispatchStatus.ROUTED,
            action=RouteAction.NEW,
            reason=reason,
            task_id=created.task_id,
            session_id=session_id,
            message_id=message_id,
            reply_text=created.ack_text,
        )

    async def _continue(
        self,
        message: NormalizedInbound,
        session_id: str,
        message_id: str,
        decision: RouteDecision,
        connectors: list,
        now: datetime,
    ) -> DispatchResult:
        try:
            await self.provider.continue_task(
                decision.task_id,
                resolve_prompt(message.text, message.attachments),
                attachments=message.attachments,
                connectors=connectors,
            )
        except TaskProviderError as e:
            if not e.is_task_not_found:
                raise
            logger.warning(f"Task {decision.task_id} no longer exists on the provider, opening a new one")
            return await self._create(
                message, session_id, message_id, CONTINUE_TASK_NOT_FOUND_FALLBACK_REASON, connectors, now
            )

        await self.tasks.mark_running(decision.task_id, now)
        return DispatchResult(
            status=DispatchStatus.ROUTED,
            action=RouteAction.CONTINUE,
            reason=decision.reason,
            task_id=decision.task_id,
            session_id=session_id,
            message_id=message_id,
        )

    async def _respond(
        self,
        message: NormalizedInbound,
        session_id: str,
        message_id: str,
        decision: RouteDecision,
        routing_message: str,
        connectors: list,
        now: datetime,
    ) -> DispatchResult:
        if self.local_responder is None:
            return await self._create(message, session_id, message_id, decision.reason, connectors, now)

        memories = []
        if self.memories is not None:
            memories = await get_memories_for_local_response(self.memories, routing_message, now)

        intent = decision.response_intent or ResponseIntent.UNCLEAR
        response = await self.local_responder.respond(routing_message, intent, memories)
        if response.escalate:
            logger.info(f"Local responder escalated message {message_id} to a task")
            return await self._create(
                message, session_id, message_id, LOCAL_RESPONSE_ESCALATED_REASON, connectors, now
            )

        await self.outbound.send_text(message.chat_id, response.text)
        await self.messages.create_outbound(
            session_id=session_id,
            content_text=response.text,
            created_at=now,
            expires_at=days_from(now, settings.message_ttl_days),
            content_json={
                "provider": "telegram",
                "type": "local_response",
                "intent": intent.value,
                "in_reply_to": message_id,
            },
        )
        return DispatchResult(
            status=DispatchStatus.ROUTED,
            action=RouteAction.RESPOND,
            reason=decision.reason,
            session_id=session_id,
            message_id=message_id,
            reply_text=response.text,
        )
