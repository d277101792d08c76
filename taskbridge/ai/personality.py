"""
Personality renderer.

Rewrites acknowledgements and task results in the configured agent voice.
Every method returns None when it cannot produce text, and callers fall
back to the plain message.
"""

import logging
from typing import Optional

from .json_parsing import parse_json_with_fallback, read_text_field
from .prompts import PromptTemplates

logger = logging.getLogger(__name__)


class NullPersonalityRenderer:
    """Used when no personality or no model is configured."""

    async def build_task_acknowledgement(self, task_title: str) -> Optional[str]:
        return None

    async def frame_task_result(self, result_text: str) -> Optional[str]:
        return None


class LLMPersonalityRenderer:
    def __init__(self, llm_client, personality: str):
        self.llm = llm_client
        self.personality = personality.strip()
        self.prompts = PromptTemplates()

    async def build_task_acknowledgement(self, task_title: str) -> Optional[str]:
        try:
            raw = await self.llm.complete(
                system=self.prompts.ACKNOWLEDGEMENT_SYSTEM_PROMPT,
                prompt=self.prompts.acknowledgement_prompt(self.personality, task_title),
                temperature=0.7,
            )
        except Exception as e:
            logger.warning(f"Personality acknowledgement failed: {e}")
            return None
        return parse_json_with_fallback(raw, read_text_field)

    async def frame_task_result(self, result_text: str) -> Optional[str]:
        result_text = (result_text or "").strip()
        if not result_text:
            return None
        try:
            raw = await self.llm.complete(
                system=self.prompts.RESULT_SYSTEM_PROMPT,
                prompt=self.prompts.result_prompt(self.personality, result_text),
                temperature=0.5,
                max_tokens=2000,
            )
        except Exception as e:
            logger.warning(f"Personality result framing failed: {e}")
            return None
        return parse_json_with_fallback(raw, read_text_field)


def create_personality_renderer(llm_client=None, personality: Optional[str] = None):
    if llm_client is None or not (personality or "").strip():
        return NullPersonalityRenderer()
    return LLMPersonalityRenderer(llm_client, personality)
