"""
Memory service.

Every candidate, whether captured from user text or extracted from a finished
task, goes through the same dedupe/supersede pass before it is stored:

- identical or substring-overlapping normalized content is a duplicate and is skipped
- a same-category record on the same narrow topic (timezone, company, or the
  same leading preference token) is superseded by the new record
"""

import logging
import re
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .explicit import detect_explicit_memories
from ..models.memory import (
    TTL_DAYS_BY_CATEGORY,
    MemoryCandidate,
    MemoryCategory,
    MemoryInsertResult,
    MemoryRecord,
    MemorySourceType,
)
from ..utils.datetime_utils import days_from

logger = logging.getLogger(__name__)

EXPLICIT_CONFIDENCE = 0.95
# Existing records compared against each batch, and the slice shown to the extractor
EXISTING_COMPARE_LIMIT = 120
EXISTING_PROMPT_LIMIT = 25

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
# Words that open a preference sentence without naming its subject
_PREFERENCE_FILLER = {"user", "prefers", "prefer", "likes", "wants"}


def normalize_for_compare(value: str) -> str:
    value = _NON_ALNUM.sub(" ", (value or "").lower())
    return _WHITESPACE.sub(" ", value).strip()


def preference_topic(normalized: str) -> str:
    """First word of what is preferred: "user prefers window seats" -> "window"."""
    words = normalized.split(" ")
    for word in words:
        if word not in _PREFERENCE_FILLER:
            return word
    return words[0]


def compute_expiry(category: MemoryCategory, now: datetime) -> Optional[datetime]:
    days = TTL_DAYS_BY_CATEGORY.get(category)
    if not days:
        return None
    return days_from(now, days)


def _topic_conflict(candidate: MemoryCandidate, candidate_norm: str, existing: MemoryRecord, existing_norm: str) -> bool:
    if candidate.category != existing.category:
        return False
    if candidate.category == MemoryCategory.FACT:
        for topic in ("timezone", "company"):
            if topic in candidate_norm and topic in existing_norm:
                return True
        return False
    if candidate.category == MemoryCategory.PREFERENCE:
        return preference_topic(candidate_norm) == preference_topic(existing_norm)
    return False


def classify_against_existing(candidate: MemoryCandidate, existing: MemoryRecord) -> Tuple[bool, bool]:
    """
    Compare a candidate with one stored record.

    Returns:
        (duplicate, supersede)
    """
    candidate_norm = normalize_for_compare(candidate.content)
    existing_norm = normalize_for_compare(existing.content)
    if not candidate_norm or not existing_norm:
        return False, False

    if candidate_norm == existing_norm or candidate_norm in existing_norm or existing_norm in candidate_norm:
        return True, False

    return False, _topic_conflict(candidate, candidate_norm, existing, existing_norm)


class MemoryService:
    """Stores memory candidates and runs LLM extraction for finished tasks."""

    def __init__(self, repository, extractor=None):
        self.repository = repository
        self.extractor = extractor

    async def store_candidates(
        self,
        candidates: Sequence[MemoryCandidate],
        source_type: MemorySourceType,
        now: datetime,
        source_task_id: Optional[str] = None,
        source_message_id: Optional[str] = None,
        existing: Optional[List[MemoryRecord]] = None,
    ) -> MemoryInsertResult:
        result = MemoryInsertResult()
        if not candidates:
            return result

        if existing is None:
            existing = await self.repository.list_active(limit=EXISTING_COMPARE_LIMIT)
        # Working copy: records inserted or superseded in this batch are reflected immediately
        active = list(existing)

        for candidate in candidates:
            duplicate = False
            supersede_ids: List[str] = []
            for record in active:
                is_duplicate, supersede = classify_against_existing(candidate, record)
                if is_duplicate:
                    duplicate = True
                    break
                if supersede:
                    supersede_ids.append(record.id)

            if duplicate:
                result.duplicates += 1
                continue

            expires_at = compute_expiry(candidate.category, now)
            memory_id = await self.repository.insert(
                category=candidate.category,
                content=candidate.content,
                source_type=source_type,
                confidence=candidate.confidence,
                now=now,
                expires_at=expires_at,
                source_task_id=source_task_id,
                source_message_id=source_message_id,
            )
            result.inserted += 1
            result.inserted_ids.append(memory_id)

            if supersede_ids:
                await self.repository.supersede(supersede_ids, memory_id, now)
                result.superseded += len(supersede_ids)
                active = [record for record in active if record.id not in supersede_ids]

            active.append(
                MemoryRecord(
                    id=memory_id,
                    category=candidate.category,
                    content=candidate.content.strip(),
                    source_type=source_type,
                    source_task_id=source_task_id,
                    source_message_id=source_message_id,
                    confidence=candidate.confidence,
                    created_at=now,
                    last_accessed_at=now,
                    expires_at=expires_at,
                )
            )

        if result.inserted or result.superseded:
            logger.info(
                f"Stored {result.inserted} {source_type.value} memories "
                f"({result.duplicates} duplicate, {result.superseded} superseded)"
            )
        return result

    async def capture_explicit(
        self,
        text: Optional[str],
        now: datetime,
        source_message_id: Optional[str] = None,
    ) -> MemoryInsertResult:
        """Store facts the user stated outright in a message."""
        candidates = [
            candidate.model_copy(update={"confidence": EXPLICIT_CONFIDENCE})
            for candidate in detect_explicit_memories(text or "")
        ]
        if not candidates:
            return MemoryInsertResult()
        return await self.store_candidates(
            candidates,
            MemorySourceType.EXPLICIT,
            now,
            source_message_id=source_message_id,
        )

    async def extract_from_task(
        self,
        source_task_id: str,
        user_request: str,
        task_title: Optional[str],
        task_result: str,
        now: datetime,
        source_message_id: Optional[str] = None,
    ) -> MemoryInsertResult:
        """Ask the extractor what is worth remembering from a finished task."""
        if self.extractor is None or not (task_result or "").strip():
            return MemoryInsertResult()

        existing = await self.repository.list_active(limit=EXISTING_COMPARE_LIMIT)
        candidates = await self.extractor.extract(
            user_request=user_request,
            task_title=task_title,
            task_result=task_result,
            existing_memories=[record.content for record in existing[:EXISTING_PROMPT_LIMIT]],
        )
        return await self.store_candidates(
            candidates,
            MemorySourceType.EXTRACTION,
            now,
            source_task_id=source_task_id,
            source_message_id=source_message_id,
            existing=existing,
        )
