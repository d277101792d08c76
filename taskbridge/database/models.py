"""
SQLAlchemy models for PostgreSQL database.

Schema includes:
- Channel sessions (one per Telegram chat + user pair)
- Inbound and outbound messages with routing audit fields
- Provider tasks and their lifecycle state
- Webhook idempotency ledger
- Attachments delivered with finished tasks
- Durable memory records

Every TTL'd table carries ``expires_at``. Only the cleanup job deletes rows,
children before parents.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def new_id() -> str:
    return str(uuid.uuid4())


# ==================== ENUMS ====================

class SessionStatusEnum(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    EXPIRED = "expired"


class MessageDirectionEnum(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class TaskStatusEnum(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING_USER = "waiting_user"


class StopReasonEnum(str, enum.Enum):
    FINISH = "finish"
    ASK = "ask"


class WebhookProcessStatusEnum(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


class MemoryCategoryEnum(str, enum.Enum):
    PREFERENCE = "preference"
    FACT = "fact"
    DECISION = "decision"
    TASK_OUTCOME = "task_outcome"
    CORRECTION = "correction"


class MemorySourceTypeEnum(str, enum.Enum):
    EXPLICIT = "explicit"
    EXTRACTION = "extraction"
    INFERRED = "inferred"


ACTIVE_TASK_STATUSES = (
    TaskStatusEnum.PENDING.value,
    TaskStatusEnum.RUNNING.value,
    TaskStatusEnum.WAITING_USER.value,
)

TERMINAL_TASK_STATUSES = (
    TaskStatusEnum.COMPLETED.value,
    TaskStatusEnum.FAILED.value,
)


# ==================== SESSIONS ====================

class ChannelSessionDB(Base):
    """A (chat, user) pair on the messaging channel."""
    __tablename__ = "channel_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    channel: Mapped[str] = mapped_column(String(30), nullable=False, default="telegram")
    channel_chat_id: Mapped[str] = mapped_column(String(100), nullable=False)
    channel_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SessionStatusEnum.ACTIVE.value)

    # Last resolved connector set, reused when a message names none
    last_connector_uids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("channel", "channel_chat_id", "channel_user_id", name="uq_session_channel_chat_user"),
        Index("idx_session_expires", "expires_at"),
    )


# ==================== TASKS ====================

class TaskDB(Base):
    """One unit of work delegated to the task provider."""
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("channel_sessions.id"), nullable=False)
    provider_task_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TaskStatusEnum.PENDING.value)
    stop_reason: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    original_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by_message_id: Mapped[str] = mapped_column(String(36), nullable=False)
    connector_uids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    stopped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_webhook_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_task_session_status", "session_id", "status"),
        Index("idx_task_status_updated", "status", "updated_at"),
        Index("idx_task_expires", "expires_at"),
    )


# ==================== MESSAGES ====================

class MessageDB(Base):
    """One inbound or outbound chat message."""
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("channel_sessions.id"), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)

    # Dedup key for inbound messages ("<chat id>:<message id>")
    channel_message_id: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    sender_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    content_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Provider task id this message belongs to
    task_id: Mapped[Optional[str]] = mapped_column(String(100), ForeignKey("tasks.provider_task_id"), nullable=True)

    # Routing audit trail
    route_action: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    route_reason: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "uq_message_channel_message_id",
            "channel_message_id",
            unique=True,
            postgresql_where=text("channel_message_id IS NOT NULL"),
        ),
        Index("idx_message_session", "session_id", "created_at"),
        Index("idx_message_task", "task_id"),
        Index("idx_message_expires", "expires_at"),
    )


# ==================== WEBHOOK LEDGER ====================

class WebhookEventDB(Base):
    """Idempotency ledger for task provider webhooks."""
    __tablename__ = "webhook_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    event_id: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    task_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    process_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WebhookProcessStatusEnum.PENDING.value
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_webhook_task", "task_id", "received_at"),
        Index("idx_webhook_status", "process_status"),
        Index("idx_webhook_expires", "expires_at"),
    )


# ==================== ATTACHMENTS ====================

class AttachmentDB(Base):
    """A file delivered to the user as part of a finished task."""
    __tablename__ = "attachments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    task_id: Mapped[str] = mapped_column(String(100), ForeignKey("tasks.provider_task_id"), nullable=False)
    event_id: Mapped[str] = mapped_column(String(150), nullable=False)

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(150), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_attachment_task", "task_id"),
        Index("idx_attachment_expires", "expires_at"),
    )


# ==================== MEMORY ====================

class MemoryRecordDB(Base):
    """A durable fact, preference or decision learned about the user."""
    __tablename__ = "memory_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_task_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    source_message_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.7)

    # Id of the newer record that replaced this one
    superseded_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_memory_active", "superseded_by", "category"),
        Index("idx_memory_last_accessed", "last_accessed_at"),
    )
