"""
Memory record repository.

Active records are those with no superseded_by and an expiry that is either
unset or in the future. Dedup and supersession decisions are made by the
memory service; this layer only stores and queries.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, delete, func, or_, select, update

from ..connection import get_database
from ..exceptions import DatabaseOperationError
from ..models import MemoryRecordDB, new_id
from ...models.memory import (
    CATEGORY_PRIORITY,
    MemoryCategory,
    MemoryRecord,
    MemorySourceType,
)

logger = logging.getLogger(__name__)


def _to_record(row: MemoryRecordDB) -> MemoryRecord:
    try:
        category = MemoryCategory(row.category)
    except ValueError:
        category = MemoryCategory.FACT
    try:
        source_type = MemorySourceType(row.source_type)
    except ValueError:
        source_type = MemorySourceType.EXTRACTION

    return MemoryRecord(
        id=row.id,
        category=category,
        content=row.content,
        source_type=source_type,
        source_task_id=row.source_task_id,
        source_message_id=row.source_message_id,
        confidence=row.confidence,
        superseded_by=row.superseded_by,
        created_at=row.created_at,
        last_accessed_at=row.last_accessed_at,
        expires_at=row.expires_at,
    )


class MemoryRepository:
    """Repository for durable memory records."""

    def __init__(self):
        self.db = get_database()

    async def insert(
        self,
        category: MemoryCategory,
        content: str,
        source_type: MemorySourceType,
        confidence: float,
        now: datetime,
        expires_at: Optional[datetime] = None,
        source_task_id: Optional[str] = None,
        source_message_id: Optional[str] = None,
    ) -> str:
        """Insert a memory. Returns the record id.

        Raises:
            ValueError: If content is empty
            DatabaseOperationError: If database operation fails
        """
        content = content.strip()
        if not content:
            raise ValueError("Memory content cannot be empty")

        async with self.db.session() as session:
            try:
                record = MemoryRecordDB(
                    id=new_id(),
                    category=category.value,
                    content=content,
                    source_type=source_type.value,
                    source_task_id=source_task_id,
                    source_message_id=source_message_id,
                    confidence=max(0.0, min(1.0, confidence)),
                    created_at=now,
                    last_accessed_at=now,
                    expires_at=expires_at,
                )
                session.add(record)
                await session.flush()
                return record.id
            except Exception as e:
                logger.error(f"Error inserting memory: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to insert memory: {e}") from e

    async def supersede(self, memory_ids: Sequence[str], superseded_by: str, now: datetime) -> None:
        """Point older records at the record that replaces them."""
        if not memory_ids:
            return
        async with self.db.session() as session:
            await session.execute(
                update(MemoryRecordDB)
                .where(
                    and_(
                        MemoryRecordDB.id.in_(list(memory_ids)),
                        MemoryRecordDB.superseded_by.is_(None),
                    )
                )
                .values(superseded_by=superseded_by, last_accessed_at=now)
            )

    async def list_active(
        self,
        categories: Optional[Sequence[MemoryCategory]] = None,
        min_confidence: Optional[float] = None,
        limit: int = 30,
        query: Optional[str] = None,
    ) -> List[MemoryRecord]:
        """Active records ordered by category priority, then most recently used."""
        clauses = [
            MemoryRecordDB.superseded_by.is_(None),
            or_(MemoryRecordDB.expires_at.is_(None), MemoryRecordDB.expires_at > func.now()),
        ]
        if categories:
            clauses.append(MemoryRecordDB.category.in_([c.value for c in categories]))
        if min_confidence is not None:
            clauses.append(MemoryRecordDB.confidence >= min_confidence)
        if query and query.strip():
            clauses.append(MemoryRecordDB.content.ilike(f"%{query.strip()}%"))

        priority = case(
            {category.value: rank for category, rank in CATEGORY_PRIORITY.items()},
            value=MemoryRecordDB.category,
            else_=99,
        )

        async with self.db.session() as session:
            result = await session.execute(
                select(MemoryRecordDB)
                .where(and_(*clauses))
                .order_by(priority, MemoryRecordDB.last_accessed_at.desc())
                .limit(limit)
            )
            return [_to_record(row) for row in result.scalars().all()]

    async def touch(self, memory_ids: Sequence[str], now: datetime) -> None:
        if not memory_ids:
            return
        async with self.db.session() as session:
            await session.execute(
                update(MemoryRecordDB)
                .where(MemoryRecordDB.id.in_(list(memory_ids)))
                .values(last_accessed_at=now)
            )

    async def delete(self, memory_id: str) -> bool:
        async with self.db.session() as session:
            result = await session.execute(delete(MemoryRecordDB).where(MemoryRecordDB.id == memory_id))
            return result.rowcount > 0

    async def cleanup(self, now: datetime, superseded_retention_days: int) -> Tuple[int, int]:
        """Delete expired records and superseded ones past retention.

        Returns:
            (expired_deleted, superseded_deleted)
        """
        retention_cutoff = now - timedelta(days=superseded_retention_days)
        async with self.db.session() as session:
            expired = await session.execute(
                delete(MemoryRecordDB).where(
                    and_(MemoryRecordDB.expires_at.isnot(None), MemoryRecordDB.expires_at <= now)
                )
            )
            superseded = await session.execute(
                delete(MemoryRecordDB).where(
                    and_(
                        MemoryRecordDB.superseded_by.isnot(None),
                        MemoryRecordDB.last_accessed_at < retention_cutoff,
                    )
                )
            )
            return expired.rowcount or 0, superseded.rowcount or 0


# Singleton
_memory_repository: Optional[MemoryRepository] = None


def get_memory_repository() -> MemoryRepository:
    global _memory_repository
    if _memory_repository is None:
        _memory_repository = MemoryRepository()
    return _memory_repository
