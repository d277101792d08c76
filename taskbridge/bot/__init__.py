from .telegram_gateway import TelegramChannelGateway
from .outbound import OutboundChannelAdapter, OutboundKind, QueuedSend, split_text
from .inbound import InboundNormalizer

__all__ = [
    "TelegramChannelGateway",
    "OutboundChannelAdapter",
    "OutboundKind",
    "QueuedSend",
    "split_text",
    "InboundNormalizer",
]
