"""
Connector Resolver.

Maps free text to upstream connector uids used as task context:
manual aliases first, then catalog names, then the session's last
resolution, else none. More than one match at a level is ambiguous and
stops resolution.
"""

import logging
import re
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ResolutionSource(str, Enum):
    MANUAL_ALIAS = "manual_alias"
    CATALOG_NAME = "catalog_name"
    SESSION_MEMORY = "session_memory"
    NONE = "none"
    AMBIGUOUS = "ambiguous"


class ConnectorResolution(BaseModel):
    connector_uids: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    reason: str
    source: ResolutionSource


def normalize(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()


def compact(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", value.lower())


def alias_matches(alias: str, message_normalized: str, message_compact: str) -> bool:
    """Multi-word aliases match on word boundaries; any alias matches its compact form."""
    if not alias:
        return False

    tokens = [t for t in alias.split(" ") if t]
    if len(tokens) > 1:
        pattern = r"\b" + r"\s+".join(re.escape(t) for t in tokens) + r"\b"
        if re.search(pattern, message_normalized, re.IGNORECASE):
            return True

    return alias.replace(" ", "") in message_compact


class InMemoryConnectorMemory:
    """Session -> last connector uids, kept in process."""

    def __init__(self):
        self._memory: Dict[str, List[str]] = {}

    async def get(self, session_id: str) -> List[str]:
        return list(self._memory.get(session_id, []))

    async def set(self, session_id: str, connector_uids: Sequence[str]) -> None:
        uids = list(dict.fromkeys(uid.strip() for uid in connector_uids if uid.strip()))
        if uids:
            self._memory[session_id] = uids
        else:
            self._memory.pop(session_id, None)


class SessionConnectorMemory:
    """Session -> last connector uids, persisted on the channel session row."""

    def __init__(self, session_repository):
        self.sessions = session_repository

    async def get(self, session_id: str) -> List[str]:
        return await self.sessions.get_last_connectors(session_id)

    async def set(self, session_id: str, connector_uids: Sequence[str]) -> None:
        uids = list(dict.fromkeys(uid.strip() for uid in connector_uids if uid.strip()))
        await self.sessions.set_last_connectors(session_id, uids)


class ConnectorResolver:
    """Rule-based resolver with a remembered session default."""

    def __init__(
        self,
        catalog,
        session_memory,
        manual_aliases: Optional[Dict[str, List[str]]] = None,
        enabled_connector_uids: Optional[Sequence[str]] = None,
    ):
        self.catalog = catalog
        self.session_memory = session_memory
        # uid -> aliases
        self.manual_aliases = manual_aliases or {}
        self.enabled_connector_uids = list(enabled_connector_uids or [])

    def _enabled_set(self, catalog_uids: Sequence[str]) -> Set[str]:
        if self.enabled_connector_uids:
            return set(self.enabled_connector_uids)
        return set(catalog_uids) | set(self.manual_aliases.keys())

    async def resolve(self, session_id: str, text: str) -> ConnectorResolution:
        message_normalized = normalize(text or "")
        message_compact = compact(text or "")

        connectors = await self.catalog.list_connectors()
        enabled = self._enabled_set([c.uid for c in connectors])

        manual_matches = set()
        for uid, aliases in self.manual_aliases.items():
            if uid not in enabled:
                continue
            for raw_alias in aliases:
                if alias_matches(normalize(raw_alias), message_normalized, message_compact):
                    manual_matches.add(uid)
                    break

        if len(manual_matches) == 1:
            uids = sorted(manual_matches)
            await self.session_memory.set(session_id, uids)
            return ConnectorResolution(
                connector_uids=uids,
                confidence=0.99,
                reason="matched_manual_alias",
                source=ResolutionSource.MANUAL_ALIAS,
            )
        if len(manual_matches) > 1:
            logger.info(f"Ambiguous manual connector aliases for session {session_id}: {sorted(manual_matches)}")
            return ConnectorResolution(reason="ambiguous_manual_aliases", source=ResolutionSource.AMBIGUOUS)

        catalog_matches = set()
        for connector in connectors:
            if connector.uid not in enabled:
                continue
            name = normalize(connector.name)
            if name and alias_matches(name, message_normalized, message_compact):
                catalog_matches.add(connector.uid)

        if len(catalog_matches) == 1:
            uids = sorted(catalog_matches)
            await self.session_memory.set(session_id, uids)
            return ConnectorResolution(
                connector_uids=uids,
                confidence=0.9,
                reason="matched_catalog_name",
                source=ResolutionSource.CATALOG_NAME,
            )
        if len(catalog_matches) > 1:
            logger.info(f"Ambiguous catalog connector matches for session {session_id}: {sorted(catalog_matches)}")
            return ConnectorResolution(reason="ambiguous_catalog_matches", source=ResolutionSource.AMBIGUOUS)

        remembered = await self.session_memory.get(session_id)
        if remembered:
            return ConnectorResolution(
                connector_uids=remembered,
                confidence=0.6,
                reason="reused_session_memory",
                source=ResolutionSource.SESSION_MEMORY,
            )

        return ConnectorResolution(reason="no_connector_match", source=ResolutionSource.NONE)
