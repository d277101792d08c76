"""
Unit tests for the personality renderer, the local responder and the
memory extractor.
"""

from datetime import datetime

import pytest
import pytz

from taskbridge.ai.local_responder import (
    CHITCHAT_REPLY,
    MEMORY_WRITE_REPLY,
    MISSING_CONTEXT_REPLY,
    UNCLEAR_REPLY,
    LocalResponder,
    fallback_response,
)
from taskbridge.ai.memory_extractor import MemoryExtractor, candidates_from_json
from taskbridge.ai.personality import (
    LLMPersonalityRenderer,
    NullPersonalityRenderer,
    create_personality_renderer,
)
from taskbridge.models.memory import MemoryCategory, MemoryRecord, MemorySourceType
from taskbridge.models.routing import ResponseIntent

from tests.fakes import FakeLLM


def record(content, category=MemoryCategory.FACT):
    ts = datetime(2026, 10, 1, tzinfo=pytz.UTC)
    return MemoryRecord(
        id="mem-1",
        category=category,
        content=content,
        source_type=MemorySourceType.EXPLICIT,
        confidence=0.95,
        created_at=ts,
        last_accessed_at=ts,
    )


# ============================================================
# PERSONALITY
# ============================================================

class TestPersonalityRenderer:
    def test_factory_needs_model_and_personality(self):
        assert isinstance(create_personality_renderer(None, "Cheerful"), NullPersonalityRenderer)
        assert isinstance(create_personality_renderer(FakeLLM(), "  "), NullPersonalityRenderer)
        assert isinstance(create_personality_renderer(FakeLLM(), "Cheerful"), LLMPersonalityRenderer)

    @pytest.mark.asyncio
    async def test_acknowledgement(self):
        llm = FakeLLM('{"text": "On it! Summarizing the news now."}')
        renderer = LLMPersonalityRenderer(llm, "Cheerful assistant")

        text = await renderer.build_task_acknowledgement("Summarize the news")

        assert text == "On it! Summarizing the news now."
        assert llm.calls[0]["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_result_framing_failure_returns_none(self):
        renderer = LLMPersonalityRenderer(FakeLLM(RuntimeError("boom")), "Cheerful")
        assert await renderer.frame_task_result("Here is the summary") is None

    @pytest.mark.asyncio
    async def test_blank_result_skips_model(self):
        llm = FakeLLM('{"text": "x"}')
        renderer = LLMPersonalityRenderer(llm, "Cheerful")

        assert await renderer.frame_task_result("   ") is None
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_null_renderer(self):
        renderer = NullPersonalityRenderer()
        assert await renderer.build_task_acknowledgement("x") is None
        assert await renderer.frame_task_result("x") is None


# ============================================================
# LOCAL RESPONDER
# ============================================================

class TestFallbackResponse:
    def test_fixed_replies(self):
        assert fallback_response(ResponseIntent.CHITCHAT, []).text == CHITCHAT_REPLY
        assert fallback_response(ResponseIntent.MEMORY_WRITE, []).text == MEMORY_WRITE_REPLY
        assert fallback_response(ResponseIntent.UNCLEAR, []).text == UNCLEAR_REPLY

    def test_memory_query_answers_from_top_memory(self):
        response = fallback_response(ResponseIntent.MEMORY_QUERY, [record("User timezone is PST")])
        assert response.text == "User timezone is PST"
        assert response.escalate is False

    def test_memory_query_without_memories_escalates(self):
        response = fallback_response(ResponseIntent.TASK_QUERY, [])
        assert response.text == MISSING_CONTEXT_REPLY
        assert response.escalate is True


class TestLocalResponder:
    @pytest.mark.asyncio
    async def test_without_model_uses_fallback(self):
        response = await LocalResponder().respond("thanks!", ResponseIntent.CHITCHAT, [])
        assert response.text == CHITCHAT_REPLY

    @pytest.mark.asyncio
    async def test_model_reply(self):
        llm = FakeLLM('{"text": "Your timezone is PST.", "escalate": false}')
        responder = LocalResponder(llm, "Friendly")

        response = await responder.respond(
            "what's my timezone?", ResponseIntent.MEMORY_QUERY, [record("User timezone is PST")]
        )

        assert response.text == "Your timezone is PST."
        assert response.escalate is False
        assert "User timezone is PST" in llm.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_model_can_escalate(self):
        responder = LocalResponder(FakeLLM('{"text": "I will run that as a task.", "escalate": true}'))

        response = await responder.respond("what's the weather?", ResponseIntent.TASK_QUERY, [])

        assert response.escalate is True

    @pytest.mark.asyncio
    async def test_model_error_uses_fallback(self):
        responder = LocalResponder(FakeLLM(RuntimeError("down")))

        response = await responder.respond("hmm", ResponseIntent.UNCLEAR, [])

        assert response.text == UNCLEAR_REPLY

    @pytest.mark.asyncio
    async def test_unparseable_reply_uses_fallback(self):
        responder = LocalResponder(FakeLLM("plain prose"))

        response = await responder.respond("thanks", ResponseIntent.CHITCHAT, [])

        assert response.text == CHITCHAT_REPLY


# ============================================================
# MEMORY EXTRACTOR
# ============================================================

class TestCandidatesFromJson:
    def test_wrapped_list(self):
        candidates = candidates_from_json({"memories": [
            {"category": "preference", "content": "User prefers window seats", "confidence": 0.9},
            {"category": "task_outcome", "content": "Booked Lisbon flights"},
        ]})

        assert [c.category for c in candidates] == [MemoryCategory.PREFERENCE, MemoryCategory.TASK_OUTCOME]
        assert candidates[0].confidence == 0.9
        assert candidates[1].confidence == 0.7

    def test_bare_list_and_bad_items(self):
        candidates = candidates_from_json([
            {"category": "fact", "content": "User lives in Lisbon", "confidence": 7},
            {"category": "gossip", "content": "x"},
            {"category": "fact", "content": "   "},
            {"category": "fact", "content": "Flag confidence", "confidence": True},
        ])

        assert [c.content for c in candidates] == ["User lives in Lisbon", "Flag confidence"]
        assert candidates[0].confidence == 1.0
        assert candidates[1].confidence == 0.7

    def test_unusable_shape(self):
        assert candidates_from_json({"items": []}) is None
        assert candidates_from_json("text") is None


class TestMemoryExtractor:
    @pytest.mark.asyncio
    async def test_extract(self):
        llm = FakeLLM('Here you go: {"memories": [{"category": "decision", "content": "Chose Italian"}]}')
        extractor = MemoryExtractor(llm)

        candidates = await extractor.extract(
            user_request="Book a restaurant",
            task_title="Dinner booking",
            task_result="Booked Trattoria at 8pm",
            existing_memories=["User timezone is PST"],
        )

        assert [c.content for c in candidates] == ["Chose Italian"]
        assert "User timezone is PST" in llm.calls[0]["prompt"]
        assert llm.calls[0]["max_tokens"] == 1200

    @pytest.mark.asyncio
    async def test_invalid_reply_yields_nothing(self):
        extractor = MemoryExtractor(FakeLLM("nothing to remember"))

        assert await extractor.extract("a", None, "b", []) == []
