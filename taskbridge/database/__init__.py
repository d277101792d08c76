"""
PostgreSQL persistence for the bridge.

Handles:
- Channel sessions and messages
- Provider tasks and the webhook idempotency ledger
- Attachments and memory records
"""

from .connection import get_database, Database, init_database, close_database
from .exceptions import (
    DatabaseError,
    DatabaseConstraintError,
    DatabaseOperationError,
)
from .models import (
    Base,
    ChannelSessionDB,
    MessageDB,
    TaskDB,
    WebhookEventDB,
    AttachmentDB,
    MemoryRecordDB,
    TaskStatusEnum,
    StopReasonEnum,
    WebhookProcessStatusEnum,
    ACTIVE_TASK_STATUSES,
    TERMINAL_TASK_STATUSES,
)

__all__ = [
    "get_database",
    "Database",
    "init_database",
    "close_database",
    "DatabaseError",
    "DatabaseConstraintError",
    "DatabaseOperationError",
    "Base",
    "ChannelSessionDB",
    "MessageDB",
    "TaskDB",
    "WebhookEventDB",
    "AttachmentDB",
    "MemoryRecordDB",
    "TaskStatusEnum",
    "StopReasonEnum",
    "WebhookProcessStatusEnum",
    "ACTIVE_TASK_STATUSES",
    "TERMINAL_TASK_STATUSES",
]
