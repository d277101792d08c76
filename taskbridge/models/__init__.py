from .channel import (
    MediaKind,
    MediaAttachment,
    OutboundMedia,
    NormalizedInbound,
    InboundStatus,
    InboundResult,
)
from .events import (
    WebhookEventType,
    StopReason,
    TaskAttachmentPayload,
    TaskDetailPayload,
    ProgressDetailPayload,
    WebhookEvent,
    parse_webhook_payload,
)
from .memory import (
    MemoryCategory,
    MemorySourceType,
    MemoryCandidate,
    MemoryRecord,
    MemoryInsertResult,
    CATEGORY_PRIORITY,
    TTL_DAYS_BY_CATEGORY,
)
from .routing import (
    RouteAction,
    ResponseIntent,
    ActiveTask,
    RouteDecision,
    DispatchStatus,
    DispatchResult,
)

__all__ = [
    "MediaKind",
    "MediaAttachment",
    "OutboundMedia",
    "NormalizedInbound",
    "InboundStatus",
    "InboundResult",
    "WebhookEventType",
    "StopReason",
    "TaskAttachmentPayload",
    "TaskDetailPayload",
    "ProgressDetailPayload",
    "WebhookEvent",
    "parse_webhook_payload",
    "MemoryCategory",
    "MemorySourceType",
    "MemoryCandidate",
    "MemoryRecord",
    "MemoryInsertResult",
    "CATEGORY_PRIORITY",
    "TTL_DAYS_BY_CATEGORY",
    "RouteAction",
    "ResponseIntent",
    "ActiveTask",
    "RouteDecision",
    "DispatchStatus",
    "DispatchResult",
]
