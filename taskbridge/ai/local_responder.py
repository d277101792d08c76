"""
Local responder.

Answers messages routed to ``respond`` without starting provider work, using
stored memories as the only context. Escalates to a new task when it cannot
answer.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .json_parsing import parse_json_with_fallback
from .prompts import PromptTemplates
from ..models.memory import MemoryRecord
from ..models.routing import ResponseIntent

logger = logging.getLogger(__name__)


CHITCHAT_REPLY = "Happy to help."
MEMORY_WRITE_REPLY = "Noted. I saved that."
UNCLEAR_REPLY = "I can help. Tell me exactly what you want me to do."
MISSING_CONTEXT_REPLY = "I might be missing context. I can run this as a full task if you want."


@dataclass
class LocalResponse:
    text: str
    escalate: bool = False


def _response_from_json(value: Any) -> Optional[LocalResponse]:
    if not isinstance(value, dict):
        return None
    text = value.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    return LocalResponse(text=text.strip(), escalate=value.get("escalate") is True)


def fallback_response(intent: ResponseIntent, memories: Sequence[MemoryRecord]) -> LocalResponse:
    """Deterministic reply used without a model or when the model fails."""
    if intent == ResponseIntent.CHITCHAT:
        return LocalResponse(CHITCHAT_REPLY)
    if intent == ResponseIntent.MEMORY_WRITE:
        return LocalResponse(MEMORY_WRITE_REPLY)
    if intent == ResponseIntent.UNCLEAR:
        return LocalResponse(UNCLEAR_REPLY)
    if memories:
        return LocalResponse(memories[0].content)
    return LocalResponse(MISSING_CONTEXT_REPLY, escalate=True)


class LocalResponder:
    def __init__(self, llm_client=None, personality: Optional[str] = None):
        self.llm = llm_client
        self.personality = personality
        self.prompts = PromptTemplates()

    async def respond(
        self,
        message: str,
        intent: ResponseIntent,
        memories: Sequence[MemoryRecord],
    ) -> LocalResponse:
        if self.llm is None:
            return fallback_response(intent, memories)

        try:
            raw = await self.llm.complete(
                system=self.prompts.LOCAL_RESPONSE_SYSTEM_PROMPT,
                prompt=self.prompts.local_response_prompt(self.personality, message, intent.value, memories),
                temperature=0.3,
            )
        except Exception as e:
            logger.warning(f"Local response generation failed, using fallback: {e}")
            return fallback_response(intent, memories)

        response = parse_json_with_fallback(raw, _response_from_json)
        return response or fallback_response(intent, memories)
