from .resolver import (
    ConnectorResolver,
    ConnectorResolution,
    ResolutionSource,
    InMemoryConnectorMemory,
    SessionConnectorMemory,
)

__all__ = [
    "ConnectorResolver",
    "ConnectorResolution",
    "ResolutionSource",
    "InMemoryConnectorMemory",
    "SessionConnectorMemory",
]
