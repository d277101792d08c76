"""
Repository classes for database operations.

Each repository handles CRUD and queries for its entity type and opens its
own session per call.
"""

from .sessions import SessionRepository, get_session_repository
from .messages import MessageRepository, get_message_repository
from .tasks import TaskRepository, StaleTask, get_task_repository
from .webhook_events import WebhookEventRepository, get_webhook_event_repository
from .attachments import AttachmentRepository, get_attachment_repository
from .memories import MemoryRepository, get_memory_repository
from .cleanup import CleanupRepository, CLEANUP_TABLE_ORDER, get_cleanup_repository

__all__ = [
    "SessionRepository",
    "get_session_repository",
    "MessageRepository",
    "get_message_repository",
    "TaskRepository",
    "StaleTask",
    "get_task_repository",
    "WebhookEventRepository",
    "get_webhook_event_repository",
    "AttachmentRepository",
    "get_attachment_repository",
    "MemoryRepository",
    "get_memory_repository",
    "CleanupRepository",
    "CLEANUP_TABLE_ORDER",
    "get_cleanup_repository",
]
