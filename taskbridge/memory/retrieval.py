"""Ranked memory retrieval for task prompts and local responses."""

from datetime import datetime
from typing import List, Sequence, Tuple

from ..models.memory import MemoryCategory, MemoryRecord

CONTEXT_HEADER = "Known context about this user:"
MIN_CONFIDENCE = 0.5
TASK_PROMPT_LIMIT = 30
LOCAL_RESPONSE_LIMIT = 12


def format_memories_for_prompt(memories: Sequence[MemoryRecord]) -> str:
    if not memories:
        return ""
    lines = [f"- {memory.content}" for memory in memories]
    return "\n".join([CONTEXT_HEADER, *lines])


async def _touch(repository, memories: Sequence[MemoryRecord], now: datetime) -> None:
    if memories:
        await repository.touch([memory.id for memory in memories], now)


async def get_memories_for_task_prompt(repository, now: datetime) -> Tuple[List[MemoryRecord], str]:
    """
    Memories to prepend to a provider prompt.

    Returns:
        (memories, context_block); the block is empty when nothing is known
    """
    memories = await repository.list_active(
        categories=list(MemoryCategory),
        min_confidence=MIN_CONFIDENCE,
        limit=TASK_PROMPT_LIMIT,
    )
    await _touch(repository, memories, now)
    return memories, format_memories_for_prompt(memories)


async def get_memories_for_local_response(repository, query: str, now: datetime) -> List[MemoryRecord]:
    """Memories matching the message text, else the top-ranked ones."""
    memories = await repository.list_active(
        min_confidence=MIN_CONFIDENCE,
        limit=LOCAL_RESPONSE_LIMIT,
        query=query,
    )
    if not memories:
        memories = await repository.list_active(min_confidence=MIN_CONFIDENCE, limit=LOCAL_RESPONSE_LIMIT)
    await _touch(repository, memories, now)
    return memories
