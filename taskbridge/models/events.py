"""Task provider webhook payload models and the boundary parser."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WebhookEventType(str, Enum):
    """Lifecycle events delivered by the task provider."""
    TASK_CREATED = "task_created"
    TASK_PROGRESS = "task_progress"
    TASK_STOPPED = "task_stopped"


class StopReason(str, Enum):
    FINISH = "finish"
    ASK = "ask"


class TaskAttachmentPayload(BaseModel):
    """A file produced by a finished task."""
    file_name: str
    url: str
    size_bytes: int


class TaskDetailPayload(BaseModel):
    task_id: str
    task_title: Optional[str] = None
    task_url: Optional[str] = None
    message: Optional[str] = None
    stop_reason: Optional[StopReason] = None
    attachments: List[TaskAttachmentPayload] = Field(default_factory=list)


class ProgressDetailPayload(BaseModel):
    task_id: str
    progress_type: str
    message: str


class WebhookEvent(BaseModel):
    """A validated provider lifecycle event, ready for the event processor."""
    event_id: str
    event_type: WebhookEventType
    task_id: str
    stop_reason: Optional[StopReason] = None
    progress_type: Optional[str] = None
    task_detail: Optional[TaskDetailPayload] = None
    progress_detail: Optional[ProgressDetailPayload] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _read_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _parse_attachments(raw: Any) -> List[TaskAttachmentPayload]:
    """Keep only attachments with a name, a url and a numeric size."""
    if not isinstance(raw, list):
        return []

    attachments = []
    for item in raw:
        item = _as_dict(item)
        file_name = _read_string(item.get("file_name"))
        url = _read_string(item.get("url"))
        size = item.get("size_bytes")
        if not file_name or not url or isinstance(size, bool) or not isinstance(size, (int, float)):
            continue
        attachments.append(TaskAttachmentPayload(file_name=file_name, url=url, size_bytes=int(size)))
    return attachments


def parse_webhook_payload(payload: Any) -> Optional[WebhookEvent]:
    """
    Parse a loosely-typed webhook body into a WebhookEvent.

    Returns None for anything without a recognised event_id/event_type or
    missing the detail fields that event type requires. Unusable attachment
    entries are dropped rather than rejecting the whole event.
    """
    body = _as_dict(payload)
    event_id = _read_string(body.get("event_id"))
    event_type_raw = _read_string(body.get("event_type"))
    if not event_id or not event_type_raw:
        return None

    try:
        event_type = WebhookEventType(event_type_raw)
    except ValueError:
        return None

    if event_type in (WebhookEventType.TASK_CREATED, WebhookEventType.TASK_STOPPED):
        detail_raw = _as_dict(body.get("task_detail"))
        task_id = _read_string(detail_raw.get("task_id"))
        if not task_id:
            return None

        stop_reason_raw = _read_string(detail_raw.get("stop_reason"))
        stop_reason = StopReason(stop_reason_raw) if stop_reason_raw in ("finish", "ask") else None

        detail = TaskDetailPayload(
            task_id=task_id,
            task_title=_read_string(detail_raw.get("task_title")),
            task_url=_read_string(detail_raw.get("task_url")),
            message=_read_string(detail_raw.get("message")),
            stop_reason=stop_reason,
            attachments=_parse_attachments(detail_raw.get("attachments")),
        )
        return WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            task_id=task_id,
            stop_reason=stop_reason,
            task_detail=detail,
            payload=body,
        )

    progress_raw = _as_dict(body.get("progress_detail"))
    task_id = _read_string(progress_raw.get("task_id"))
    progress_type = _read_string(progress_raw.get("progress_type"))
    message = _read_string(progress_raw.get("message"))
    if not task_id or not progress_type or not message:
        return None

    return WebhookEvent(
        event_id=event_id,
        event_type=event_type,
        task_id=task_id,
        progress_type=progress_type,
        progress_detail=ProgressDetailPayload(task_id=task_id, progress_type=progress_type, message=message),
        payload=body,
    )
