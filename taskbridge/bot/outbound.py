"""
Outbound Channel Adapter - ordered delivery that survives disconnects.

Features:
- One FIFO queue of pending text/media sends for the adapter's lifetime
- Immediate dispatch while connected, queueing while disconnected
- Single-flight flush that stops at the first failure to preserve order
- Fire-and-forget typing indicators
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, List, Optional

from config import settings
from ..models.channel import OutboundMedia
from ..utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class OutboundKind(Enum):
    TEXT = "text"
    MEDIA = "media"


@dataclass
class QueuedSend:
    """A send waiting for the channel."""
    kind: OutboundKind
    chat_id: str
    text: Optional[str] = None
    media: Optional[OutboundMedia] = None
    attempts: int = 0
    enqueued_at: datetime = field(default_factory=utc_now)
    last_error: Optional[str] = None


def split_text(text: str, max_length: int) -> List[str]:
    """
    Split text into chunks of at most ``max_length`` characters.

    Breaks on the last newline in the window, else the last space, else hard.
    """
    remaining = text.strip()
    if not remaining:
        return []

    chunks = []
    while len(remaining) > max_length:
        window = remaining[:max_length]
        cut = window.rfind("\n")
        if cut <= 0:
            cut = window.rfind(" ")
        if cut <= 0:
            cut = max_length
        chunk = remaining[:cut].rstrip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[cut:].lstrip()

    if remaining:
        chunks.append(remaining)
    return chunks


class OutboundChannelAdapter:
    """
    Wraps a channel gateway with a FIFO retry queue.

    Sends never raise: anything that cannot be dispatched is queued and
    delivered by a later flush.
    """

    def __init__(self, gateway, max_chunk_length: Optional[int] = None):
        self.gateway = gateway
        self.max_chunk_length = max_chunk_length or settings.telegram_max_message_length
        self._queue: Deque[QueuedSend] = deque()
        self._flushing = False

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    def pending(self) -> List[QueuedSend]:
        return list(self._queue)

    # ==================== SENDING ====================

    async def send_text(self, chat_id: str, text: str) -> bool:
        """
        Send text, split into channel-sized chunks.

        Returns True if every chunk was dispatched now, False if any was queued.
        """
        delivered = True
        for chunk in split_text(text, self.max_chunk_length):
            sent = await self._send_or_queue(QueuedSend(kind=OutboundKind.TEXT, chat_id=chat_id, text=chunk))
            delivered = delivered and sent
        return delivered

    async def send_media(self, chat_id: str, media: OutboundMedia) -> bool:
        return await self._send_or_queue(QueuedSend(kind=OutboundKind.MEDIA, chat_id=chat_id, media=media))

    async def set_typing(self, chat_id: str, on: bool) -> None:
        """Best effort; never raises."""
        try:
            await self.gateway.set_typing(chat_id, on)
        except Exception as e:
            logger.debug(f"Typing indicator failed for {chat_id}: {e}")

    async def _send_or_queue(self, item: QueuedSend) -> bool:
        if not self.gateway.is_connected():
            self._queue.append(item)
            logger.info(f"Channel disconnected, queued {item.kind.value} for {item.chat_id} (depth={len(self._queue)})")
            return False

        # Earlier sends are still waiting: keep order by queueing behind them
        if self._queue:
            self._queue.append(item)
            await self.flush()
            return not any(queued is item for queued in self._queue)

        try:
            await self._dispatch(item)
            return True
        except Exception as e:
            item.attempts += 1
            item.last_error = str(e)
            self._queue.append(item)
            logger.warning(f"Send to {item.chat_id} failed, queued for retry: {e}")
            return False

    async def _dispatch(self, item: QueuedSend) -> None:
        if item.kind == OutboundKind.TEXT:
            await self.gateway.send_text(item.chat_id, item.text or "")
        else:
            await self.gateway.send_media(item.chat_id, item.media)

    # ==================== FLUSH ====================

    async def flush(self) -> int:
        """
        Drain the queue in order while connected.

        Only one flush runs at a time. On failure the item goes back to the
        head and flushing stops. Returns the number of items delivered.
        """
        if self._flushing:
            return 0

        self._flushing = True
        sent = 0
        try:
            while self._queue and self.gateway.is_connected():
                item = self._queue.popleft()
                try:
                    await self._dispatch(item)
                    sent += 1
                except Exception as e:
                    item.attempts += 1
                    item.last_error = str(e)
                    self._queue.appendleft(item)
                    logger.warning(
                        f"Flush stopped at {item.kind.value} for {item.chat_id} "
                        f"(attempt {item.attempts}): {e}"
                    )
                    break
                await asyncio.sleep(0)
        finally:
            self._flushing = False

        if sent:
            logger.info(f"Flushed {sent} queued send(s), {len(self._queue)} remaining")
        return sent
