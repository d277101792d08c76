"""Memory record shapes."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class MemoryCategory(str, Enum):
    PREFERENCE = "preference"
    FACT = "fact"
    DECISION = "decision"
    TASK_OUTCOME = "task_outcome"
    CORRECTION = "correction"


class MemorySourceType(str, Enum):
    EXPLICIT = "explicit"
    EXTRACTION = "extraction"
    INFERRED = "inferred"


# Retrieval order: lower sorts first
CATEGORY_PRIORITY = {
    MemoryCategory.PREFERENCE: 1,
    MemoryCategory.FACT: 2,
    MemoryCategory.CORRECTION: 3,
    MemoryCategory.DECISION: 4,
    MemoryCategory.TASK_OUTCOME: 5,
}

# Only these categories expire on their own
TTL_DAYS_BY_CATEGORY = {
    MemoryCategory.DECISION: 90,
    MemoryCategory.TASK_OUTCOME: 60,
}


class MemoryCandidate(BaseModel):
    """A memory proposed by explicit or LLM extraction, not yet stored."""
    category: MemoryCategory
    content: str
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    conflict_hints: List[str] = Field(default_factory=list)


class MemoryRecord(BaseModel):
    """A stored memory as seen by retrieval and dedup logic."""
    id: str
    category: MemoryCategory
    content: str
    source_type: MemorySourceType
    source_task_id: Optional[str] = None
    source_message_id: Optional[str] = None
    confidence: float
    superseded_by: Optional[str] = None
    created_at: datetime
    last_accessed_at: datetime
    expires_at: Optional[datetime] = None


class MemoryInsertResult(BaseModel):
    inserted: int = 0
    duplicates: int = 0
    superseded: int = 0
    inserted_ids: List[str] = Field(default_factory=list)
