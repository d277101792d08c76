"""Routing, task creation, webhook processing and inbound dispatch."""

from .dispatch import InboundDispatcher, resolve_router_message
from .event_processor import EventProcessor, ProcessOutcome, mime_from_extension, resolve_mime_type
from .router import TaskRouter, validate_decision
from .task_creation import TaskCreationResult, TaskCreationWorkflow, build_ack_text, resolve_prompt, title_from_prompt
from .webhook_handler import WebhookHandler, WebhookResponse, secrets_match

__all__ = [
    "InboundDispatcher",
    "resolve_router_message",
    "EventProcessor",
    "ProcessOutcome",
    "mime_from_extension",
    "resolve_mime_type",
    "TaskRouter",
    "validate_decision",
    "TaskCreationResult",
    "TaskCreationWorkflow",
    "build_ack_text",
    "resolve_prompt",
    "title_from_prompt",
    "WebhookHandler",
    "WebhookResponse",
    "secrets_match",
]
