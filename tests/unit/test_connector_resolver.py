"""
Unit tests for the connector resolver and the connector catalog.
"""

import httpx
import pytest

from taskbridge.connectors.resolver import (
    ConnectorResolver,
    InMemoryConnectorMemory,
    ResolutionSource,
    SessionConnectorMemory,
    alias_matches,
    compact,
    normalize,
)
from taskbridge.integrations.connector_catalog import (
    CachedConnectorCatalog,
    CatalogConnector,
    RemoteConnectorCatalog,
)

from tests.fakes import FakeCatalog, FakeSessionRepository


CATALOG = [("gmail-uid", "Gmail"), ("gcal-uid", "Google Calendar"), ("notion-uid", "Notion")]


@pytest.fixture
def memory():
    return InMemoryConnectorMemory()


def resolver(memory, catalog=None, aliases=None, enabled=None):
    return ConnectorResolver(
        catalog=FakeCatalog(CATALOG if catalog is None else catalog),
        session_memory=memory,
        manual_aliases=aliases,
        enabled_connector_uids=enabled,
    )


# ============================================================
# MATCHING HELPERS
# ============================================================

def test_normalize_and_compact():
    assert normalize("Check my G-Mail, please!") == "check my g mail please"
    assert compact("Google  Calendar") == "googlecalendar"


def test_alias_matches_multi_word_and_compact_forms():
    message = "add it to my google calendar"
    assert alias_matches("google calendar", normalize(message), compact(message))
    assert alias_matches("google calendar", normalize("googlecalendar sync"), compact("googlecalendar sync"))
    assert not alias_matches("google calendar", normalize("google drive"), compact("google drive"))
    assert not alias_matches("", "anything", "anything")


# ============================================================
# RESOLUTION ORDER
# ============================================================

@pytest.mark.asyncio
async def test_manual_alias_wins(memory):
    r = resolver(memory, aliases={"gmail-uid": ["inbox", "email"]})

    resolution = await r.resolve("session-1", "Summarize my inbox")

    assert resolution.connector_uids == ["gmail-uid"]
    assert resolution.source == ResolutionSource.MANUAL_ALIAS
    assert resolution.confidence == 0.99
    assert await memory.get("session-1") == ["gmail-uid"]


@pytest.mark.asyncio
async def test_catalog_name_match(memory):
    resolution = await resolver(memory).resolve("session-1", "What's on my Google Calendar tomorrow?")

    assert resolution.connector_uids == ["gcal-uid"]
    assert resolution.source == ResolutionSource.CATALOG_NAME
    assert resolution.reason == "matched_catalog_name"


@pytest.mark.asyncio
async def test_ambiguous_catalog_match_resolves_nothing(memory):
    resolution = await resolver(memory).resolve("session-1", "Copy notes from Notion into Gmail")

    assert resolution.connector_uids == []
    assert resolution.source == ResolutionSource.AMBIGUOUS
    assert await memory.get("session-1") == []


@pytest.mark.asyncio
async def test_ambiguous_manual_aliases(memory):
    r = resolver(memory, aliases={"gmail-uid": ["mail"], "notion-uid": ["notes"]})

    resolution = await r.resolve("session-1", "mail me my notes")

    assert resolution.source == ResolutionSource.AMBIGUOUS
    assert resolution.reason == "ambiguous_manual_aliases"


@pytest.mark.asyncio
async def test_session_memory_reused_when_nothing_matches(memory):
    r = resolver(memory)
    await r.resolve("session-1", "Check Gmail")

    resolution = await r.resolve("session-1", "and reply to the latest one")

    assert resolution.connector_uids == ["gmail-uid"]
    assert resolution.source == ResolutionSource.SESSION_MEMORY
    assert resolution.confidence == 0.6


@pytest.mark.asyncio
async def test_no_match(memory):
    resolution = await resolver(memory).resolve("session-2", "Tell me a joke")

    assert resolution.connector_uids == []
    assert resolution.source == ResolutionSource.NONE


@pytest.mark.asyncio
async def test_enabled_list_restricts_matches(memory):
    r = resolver(memory, enabled=["notion-uid"])

    resolution = await r.resolve("session-1", "Check Gmail")

    assert resolution.source == ResolutionSource.NONE


@pytest.mark.asyncio
async def test_manual_alias_for_connector_missing_from_catalog(memory):
    r = resolver(memory, catalog=[], aliases={"slack-uid": ["slack"]})

    resolution = await r.resolve("session-1", "post this in slack")

    assert resolution.connector_uids == ["slack-uid"]


@pytest.mark.asyncio
async def test_session_connector_memory_persists_on_session():
    sessions = FakeSessionRepository()
    session_id = await sessions.upsert("555", "777", None, None)
    memory = SessionConnectorMemory(sessions)

    await memory.set(session_id, [" gmail-uid ", "gmail-uid", ""])

    assert await memory.get(session_id) == ["gmail-uid"]
    assert sessions.rows[session_id].last_connector_uids == ["gmail-uid"]


# ============================================================
# CATALOG
# ============================================================

class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ScriptedSource:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def list_connectors(self):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.asyncio
async def test_cached_catalog_serves_within_ttl():
    clock = FakeClock()
    source = ScriptedSource([CatalogConnector("a", "Alpha")], [CatalogConnector("b", "Beta")])
    cached = CachedConnectorCatalog(source, ttl_seconds=60, clock=clock)

    assert [c.uid for c in await cached.list_connectors()] == ["a"]
    clock.now = 30
    assert [c.uid for c in await cached.list_connectors()] == ["a"]
    assert source.calls == 1

    clock.now = 61
    assert [c.uid for c in await cached.list_connectors()] == ["b"]


@pytest.mark.asyncio
async def test_cached_catalog_keeps_last_good_list():
    clock = FakeClock()
    source = ScriptedSource([CatalogConnector("a", "Alpha")], [], RuntimeError("down"))
    cached = CachedConnectorCatalog(source, ttl_seconds=10, clock=clock)

    await cached.list_connectors()
    clock.now = 11
    assert [c.uid for c in await cached.list_connectors()] == ["a"]
    clock.now = 22
    assert [c.uid for c in await cached.list_connectors()] == ["a"]


@pytest.mark.asyncio
async def test_remote_catalog_parses_and_dedupes():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        return httpx.Response(200, json={"connectors": [
            {"uid": "a", "name": "Alpha"},
            {"uid": "a", "name": "Alpha again"},
            {"uid": "", "name": "No uid"},
            {"uid": "b", "name": "Beta"},
            "junk",
        ]})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    catalog = RemoteConnectorCatalog(endpoint="https://catalog.example.com/list", limit=50, http_client=client)

    connectors = await catalog.list_connectors()

    assert [(c.uid, c.name) for c in connectors] == [("a", "Alpha again"), ("b", "Beta")]
    await client.aclose()


@pytest.mark.asyncio
async def test_remote_catalog_failures_yield_empty_list():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    catalog = RemoteConnectorCatalog(endpoint="https://catalog.example.com/list", http_client=client)

    assert await catalog.list_connectors() == []
    assert await RemoteConnectorCatalog(endpoint="").list_connectors() == []
    await client.aclose()
