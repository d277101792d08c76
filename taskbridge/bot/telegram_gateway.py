"""
Telegram channel gateway.

Thin wrapper over python-telegram-bot's Bot exposing the primitives the
bridge needs: send text, send media, typing indicator, file download and a
connectivity flag. Network failures flip the flag off; the periodic health
check flips it back on and notifies listeners (the outbound queue flush).
"""

import io
import logging
from typing import Awaitable, Callable, List, Optional

from telegram import Bot
from telegram.constants import ChatAction
from telegram.error import NetworkError, TelegramError

from config import settings
from ..models.channel import OutboundMedia

logger = logging.getLogger(__name__)


ReconnectListener = Callable[[], Awaitable[object]]


class TelegramChannelGateway:
    """Send/receive primitives for the Telegram Bot API."""

    def __init__(self, token: Optional[str] = None, bot: Optional[Bot] = None):
        self.token = token if token is not None else settings.telegram_bot_token
        self.webhook_url = f"{settings.webhook_base_url}/webhook/telegram"
        self.bot: Optional[Bot] = bot
        self._connected = bot is not None
        self._reconnect_listeners: List[ReconnectListener] = []

    async def initialize(self) -> bool:
        """Create the Bot and verify the token."""
        if self.bot is None:
            if not self.token:
                logger.error("Telegram bot token not configured")
                return False
            self.bot = Bot(self.token)

        try:
            await self.bot.initialize()
            self._connected = True
            logger.info("Telegram gateway initialized")
        except TelegramError as e:
            self._connected = False
            logger.error(f"Telegram gateway failed to initialize: {e}")
        return self._connected

    async def shutdown(self) -> None:
        if self.bot is not None:
            try:
                await self.bot.shutdown()
            except TelegramError as e:
                logger.warning(f"Telegram shutdown error: {e}")
        self._connected = False

    # ==================== CONNECTIVITY ====================

    def is_connected(self) -> bool:
        return self.bot is not None and self._connected

    def add_reconnect_listener(self, listener: ReconnectListener) -> None:
        self._reconnect_listeners.append(listener)

    def _mark_disconnected(self, error: Exception) -> None:
        if self._connected:
            logger.warning(f"Telegram connection lost: {error}")
        self._connected = False

    async def check_connection(self) -> bool:
        """Probe the Bot API; on recovery notify reconnect listeners."""
        if self.bot is None:
            return False

        was_connected = self._connected
        try:
            await self.bot.get_me()
        except NetworkError as e:
            self._mark_disconnected(e)
            return False
        except TelegramError as e:
            logger.warning(f"Telegram health probe failed: {e}")
            return self._connected

        self._connected = True
        if not was_connected:
            logger.info("Telegram connection restored")
            for listener in self._reconnect_listeners:
                try:
                    await listener()
                except Exception as e:
                    logger.error(f"Reconnect listener failed: {e}", exc_info=True)
        return True

    # ==================== SENDING ====================

    def _require_bot(self) -> Bot:
        if self.bot is None:
            raise RuntimeError("Telegram gateway not initialized")
        return self.bot

    async def send_text(self, chat_id: str, text: str) -> None:
        bot = self._require_bot()
        try:
            await bot.send_message(chat_id=chat_id, text=text)
        except NetworkError as e:
            self._mark_disconnected(e)
            raise

    async def send_media(self, chat_id: str, media: OutboundMedia) -> None:
        """Send a file, picking the Bot API method from the MIME type."""
        bot = self._require_bot()
        payload = io.BytesIO(media.data)
        payload.name = media.file_name
        mime = (media.mime_type or "").lower()

        try:
            if mime.startswith("image/") and mime not in ("image/svg+xml", "image/gif"):
                await bot.send_photo(chat_id=chat_id, photo=payload, caption=media.caption)
            elif mime == "image/gif":
                await bot.send_animation(chat_id=chat_id, animation=payload, caption=media.caption)
            elif mime.startswith("video/"):
                await bot.send_video(chat_id=chat_id, video=payload, caption=media.caption)
            elif mime.startswith("audio/"):
                await bot.send_audio(chat_id=chat_id, audio=payload, caption=media.caption)
            else:
                await bot.send_document(
                    chat_id=chat_id,
                    document=payload,
                    filename=media.file_name,
                    caption=media.caption,
                )
        except NetworkError as e:
            self._mark_disconnected(e)
            raise

    async def set_typing(self, chat_id: str, on: bool) -> None:
        """Telegram typing indicators expire on their own; turning off is a no-op."""
        if not on:
            return
        bot = self._require_bot()
        await bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)

    # ==================== RECEIVING ====================

    async def download_file(self, file_id: str) -> bytes:
        bot = self._require_bot()
        telegram_file = await bot.get_file(file_id)
        data = await telegram_file.download_as_bytearray()
        return bytes(data)

    async def set_webhook(self, secret_token: Optional[str] = None) -> bool:
        """Point Telegram at our webhook endpoint."""
        if self.bot is None or not settings.webhook_base_url:
            return False
        try:
            await self.bot.set_webhook(url=self.webhook_url, secret_token=secret_token)
            logger.info(f"Webhook set: {self.webhook_url}")
            return True
        except TelegramError as e:
            logger.error(f"Webhook error: {e}")
            return False
