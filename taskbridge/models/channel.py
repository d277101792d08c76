"""Channel-facing data shapes shared by the inbound and outbound adapters."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


@dataclass
class MediaAttachment:
    """A downloaded inbound media item."""
    kind: MediaKind
    mime_type: str
    file_name: str
    data: bytes
    size_bytes: int
    caption: Optional[str] = None


@dataclass
class OutboundMedia:
    """A file to deliver to a chat."""
    data: bytes
    mime_type: str
    file_name: str
    caption: Optional[str] = None


@dataclass
class NormalizedInbound:
    """Canonical form of a raw channel message."""
    channel_message_id: str
    chat_id: str
    sender_id: str
    text: Optional[str]
    timestamp: datetime
    attachments: List[MediaAttachment] = field(default_factory=list)
    sender_name: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class InboundStatus(str, Enum):
    STORED = "stored"
    RATE_LIMITED = "rate_limited"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass
class InboundResult:
    """Outcome of the normalize / rate limit / dedup / persist pipeline."""
    status: InboundStatus
    message: Optional[NormalizedInbound] = None
    session_id: Optional[str] = None
    message_id: Optional[str] = None
