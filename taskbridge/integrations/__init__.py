from .task_provider import (
    TaskProviderClient,
    TaskProviderError,
    CreatedTask,
    ProviderTaskStatus,
    to_base64_attachments,
)
from .connector_catalog import CatalogConnector, RemoteConnectorCatalog, CachedConnectorCatalog

__all__ = [
    "TaskProviderClient",
    "TaskProviderError",
    "CreatedTask",
    "ProviderTaskStatus",
    "to_base64_attachments",
    "CatalogConnector",
    "RemoteConnectorCatalog",
    "CachedConnectorCatalog",
]
