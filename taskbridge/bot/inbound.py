"""
Inbound Normalizer / Deduplicator.

Turns a raw Telegram Bot API message (the ``message`` object of an update)
into a NormalizedInbound, then runs the admission pipeline:
normalize -> rate limit -> dedup -> session upsert -> message insert.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from config import settings
from ..models.channel import (
    InboundResult,
    InboundStatus,
    MediaAttachment,
    MediaKind,
    NormalizedInbound,
)
from ..utils.datetime_utils import days_from, utc_now

logger = logging.getLogger(__name__)


DEFAULT_MIME_BY_KIND = {
    MediaKind.IMAGE: "image/jpeg",
    MediaKind.VIDEO: "video/mp4",
    MediaKind.AUDIO: "audio/ogg",
    MediaKind.DOCUMENT: "application/octet-stream",
}


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _message_timestamp(raw: Dict[str, Any]) -> datetime:
    value = raw.get("date")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return utc_now()


def extract_text(raw: Dict[str, Any]) -> Optional[str]:
    """Message body first, then the media caption."""
    return _clean(raw.get("text")) or _clean(raw.get("caption"))


def extension_from_mime(mime_type: str) -> str:
    parts = mime_type.split("/")
    if len(parts) < 2:
        return "bin"
    ext = parts[1].split(";")[0].strip().lower()
    return ext or "bin"


def detect_media(raw: Dict[str, Any]) -> Optional[Tuple[MediaKind, Dict[str, Any]]]:
    """At most one media item per message, chosen by message shape."""
    photos = raw.get("photo")
    if isinstance(photos, list) and photos:
        # Telegram lists sizes smallest first
        largest = max(photos, key=lambda p: (p.get("file_size") or 0, p.get("width") or 0))
        return MediaKind.IMAGE, largest

    for key, kind in (
        ("video", MediaKind.VIDEO),
        ("video_note", MediaKind.VIDEO),
        ("animation", MediaKind.VIDEO),
        ("audio", MediaKind.AUDIO),
        ("voice", MediaKind.AUDIO),
        ("document", MediaKind.DOCUMENT),
    ):
        media = raw.get(key)
        if isinstance(media, dict) and media.get("file_id"):
            return kind, media
    return None


class InboundNormalizer:
    """Admission pipeline for raw channel messages."""

    def __init__(self, gateway, rate_limiter, session_repository, message_repository):
        self.gateway = gateway
        self.rate_limiter = rate_limiter
        self.sessions = session_repository
        self.messages = message_repository

    async def normalize(self, raw: Dict[str, Any]) -> Optional[NormalizedInbound]:
        """
        Build the canonical message, downloading media if present.

        Returns None when the message has no message id or no chat id.
        """
        if not isinstance(raw, dict):
            return None

        message_id = raw.get("message_id")
        chat = raw.get("chat") if isinstance(raw.get("chat"), dict) else {}
        chat_id = chat.get("id")
        if message_id is None or chat_id is None:
            return None

        chat_id = str(chat_id)
        sender = raw.get("from") if isinstance(raw.get("from"), dict) else {}
        sender_id = str(sender["id"]) if sender.get("id") is not None else chat_id
        sender_name = _clean(sender.get("first_name")) or _clean(sender.get("username"))
        channel_message_id = f"{chat_id}:{message_id}"

        attachments = []
        media = detect_media(raw)
        if media:
            kind, descriptor = media
            mime_type = _clean(descriptor.get("mime_type")) or DEFAULT_MIME_BY_KIND[kind]
            file_name = (
                _clean(descriptor.get("file_name"))
                or f"{kind.value}-{message_id}.{extension_from_mime(mime_type)}"
            )
            data = await self.gateway.download_file(descriptor["file_id"])
            attachments.append(
                MediaAttachment(
                    kind=kind,
                    mime_type=mime_type,
                    file_name=file_name,
                    data=data,
                    size_bytes=len(data),
                    caption=_clean(raw.get("caption")),
                )
            )

        return NormalizedInbound(
            channel_message_id=channel_message_id,
            chat_id=chat_id,
            sender_id=sender_id,
            sender_name=sender_name,
            text=extract_text(raw),
            timestamp=_message_timestamp(raw),
            attachments=attachments,
            raw=raw,
        )

    def _metadata(self, message: NormalizedInbound) -> Dict[str, Any]:
        reply = message.raw.get("reply_to_message")
        reply_text = None
        if isinstance(reply, dict):
            reply_text = _clean(reply.get("text")) or _clean(reply.get("caption"))
        return {
            "provider": "telegram",
            "sender_name": message.sender_name,
            "timestamp": message.timestamp.isoformat(),
            "reply_to_text": reply_text,
            "attachments": [
                {
                    "kind": a.kind.value,
                    "mime_type": a.mime_type,
                    "file_name": a.file_name,
                    "size_bytes": a.size_bytes,
                    "caption": a.caption,
                }
                for a in message.attachments
            ],
        }

    async def process(self, raw: Dict[str, Any], now: Optional[datetime] = None) -> InboundResult:
        """Run the full admission pipeline for one raw message."""
        message = await self.normalize(raw)
        if message is None:
            logger.debug("Ignoring inbound message without message id or chat id")
            return InboundResult(status=InboundStatus.IGNORED)

        allowed, _ = await self.rate_limiter.check(message.sender_id)
        if not allowed:
            return InboundResult(status=InboundStatus.RATE_LIMITED, message=message)

        if await self.messages.has_channel_message(message.channel_message_id):
            logger.info(f"Duplicate inbound message {message.channel_message_id}")
            return InboundResult(status=InboundStatus.DUPLICATE, message=message)

        now = now or utc_now()
        session_id = await self.sessions.upsert(
            chat_id=message.chat_id,
            user_id=message.sender_id,
            now=now,
            expires_at=days_from(now, settings.session_ttl_days),
        )

        message_id = await self.messages.insert_inbound(
            session_id=session_id,
            channel_message_id=message.channel_message_id,
            sender_id=message.sender_id,
            content_text=message.text,
            content_json=self._metadata(message),
            created_at=now,
            expires_at=days_from(now, settings.message_ttl_days),
        )
        if message_id is None:
            # Lost an insert race with a concurrent delivery
            logger.info(f"Duplicate inbound message {message.channel_message_id} (insert skipped)")
            return InboundResult(status=InboundStatus.DUPLICATE, message=message, session_id=session_id)

        return InboundResult(
            status=InboundStatus.STORED,
            message=message,
            session_id=session_id,
            message_id=message_id,
        )
