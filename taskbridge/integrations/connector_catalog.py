"""
Remote connector catalog.

The catalog endpoint lists upstream integrations by uid and display name.
CachedConnectorCatalog keeps the last non-empty result so a failed or
empty fetch never erases what the resolver could previously match.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogConnector:
    uid: str
    name: str


class RemoteConnectorCatalog:
    """Fetches the connector list with a single POST {offset, limit}."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        limit: Optional[int] = None,
        timeout_seconds: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.connector_catalog_url
        self.limit = limit or settings.connector_catalog_limit
        self.timeout = timeout_seconds
        self._client = http_client

    async def list_connectors(self) -> List[CatalogConnector]:
        """Return the deduplicated catalog, or [] on any failure."""
        if not self.endpoint:
            return []

        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, json={"offset": 0, "limit": self.limit})
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint, json={"offset": 0, "limit": self.limit})
        except httpx.HTTPError as e:
            logger.warning(f"Connector catalog fetch failed: {e}")
            return []

        if response.status_code >= 400:
            logger.warning(f"Connector catalog returned {response.status_code}")
            return []

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Connector catalog returned invalid JSON")
            return []

        raw = payload.get("connectors") if isinstance(payload, dict) else None
        if not isinstance(raw, list):
            return []

        by_uid = {}
        for item in raw:
            if not isinstance(item, dict):
                continue
            uid = str(item.get("uid") or "").strip()
            name = str(item.get("name") or "").strip()
            if uid and name:
                by_uid[uid] = CatalogConnector(uid=uid, name=name)
        return list(by_uid.values())


class CachedConnectorCatalog:
    """TTL cache in front of a catalog that serves stale data over nothing."""

    def __init__(self, source, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.source = source
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.connector_catalog_ttl_seconds
        self._clock = clock
        self._fetched_at: Optional[float] = None
        self._connectors: List[CatalogConnector] = []

    async def list_connectors(self) -> List[CatalogConnector]:
        now = self._clock()
        if self._fetched_at is not None and now - self._fetched_at < self.ttl_seconds:
            return self._connectors

        try:
            connectors = await self.source.list_connectors()
        except Exception as e:
            logger.warning(f"Connector catalog source failed, serving cached list: {e}")
            connectors = []

        if connectors:
            self._connectors = list(connectors)
            self._fetched_at = now
            return self._connectors

        return self._connectors
