"""Extract durable memories from a finished task with the completion model."""

import logging
from typing import Any, List, Optional

from .json_parsing import parse_json_with_fallback
from .prompts import PromptTemplates
from ..models.memory import MemoryCandidate, MemoryCategory

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_CONFIDENCE = 0.7


def _candidate_from_item(item: Any) -> Optional[MemoryCandidate]:
    if not isinstance(item, dict):
        return None
    try:
        category = MemoryCategory(item.get("category"))
    except ValueError:
        return None
    content = item.get("content")
    if not isinstance(content, str) or not content.strip():
        return None

    confidence = item.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = DEFAULT_EXTRACTION_CONFIDENCE
    confidence = min(1.0, max(0.0, float(confidence)))

    return MemoryCandidate(category=category, content=content.strip(), confidence=confidence)


def candidates_from_json(value: Any) -> Optional[List[MemoryCandidate]]:
    """Accept {"memories": [...]} or a bare list."""
    if isinstance(value, dict):
        value = value.get("memories")
    if not isinstance(value, list):
        return None
    candidates = []
    for item in value:
        candidate = _candidate_from_item(item)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


class MemoryExtractor:
    def __init__(self, llm_client):
        self.llm = llm_client
        self.prompts = PromptTemplates()

    async def extract(
        self,
        user_request: str,
        task_title: Optional[str],
        task_result: str,
        existing_memories: List[str],
    ) -> List[MemoryCandidate]:
        raw = await self.llm.complete(
            system=self.prompts.EXTRACTION_SYSTEM_PROMPT,
            prompt=self.prompts.extraction_prompt(user_request, task_title, task_result, existing_memories),
            max_tokens=1200,
        )
        candidates = parse_json_with_fallback(raw, candidates_from_json)
        if candidates is None:
            logger.warning("Memory extraction reply was not valid JSON")
            return []
        return candidates
