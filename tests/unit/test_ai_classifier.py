"""
Unit tests for the routing classifiers, loose JSON parsing and the
completion client wrapper.
"""

import json

import pytest
from unittest.mock import AsyncMock, Mock

from taskbridge.ai.classifier import (
    PARSE_FALLBACK_REASON,
    UNCONFIGURED_FALLBACK_REASON,
    FallbackNewClassifier,
    LLMTaskClassifier,
    create_classifier,
    decision_from_json,
)
from taskbridge.ai.json_parsing import parse_json_with_fallback, read_text_field
from taskbridge.ai.llm_client import LLMCompletionClient
from taskbridge.models.routing import ActiveTask, ResponseIntent, RouteAction

from tests.fakes import FakeLLM


ACTIVE = [
    ActiveTask(task_id="t1", title="Flights to Lisbon", original_prompt="Find flights", status="running"),
    ActiveTask(task_id="t2", title="Restaurant", original_prompt="Book dinner", status="waiting_user"),
]


# ============================================================
# JSON PARSING
# ============================================================

class TestParseJsonWithFallback:
    def test_plain_json(self):
        assert parse_json_with_fallback('{"text": "hi"}', read_text_field) == "hi"

    def test_json_inside_code_fence(self):
        raw = 'Sure!\n```json\n{"text": "fenced"}\n```'
        assert parse_json_with_fallback(raw, read_text_field) == "fenced"

    def test_unusable_shape_returns_none(self):
        assert parse_json_with_fallback('{"other": 1}', read_text_field) is None

    def test_empty_and_garbage(self):
        assert parse_json_with_fallback("", read_text_field) is None
        assert parse_json_with_fallback(None, read_text_field) is None
        assert parse_json_with_fallback("no json here", read_text_field) is None

    def test_blank_text_is_rejected(self):
        assert read_text_field({"text": "   "}) is None


# ============================================================
# DECISION CONVERSION
# ============================================================

class TestDecisionFromJson:
    def test_new(self):
        decision = decision_from_json({"action": "new", "reason": "different topic"})
        assert decision.action == RouteAction.NEW
        assert decision.reason == "different topic"

    def test_continue_accepts_camel_case_task_id(self):
        decision = decision_from_json({"action": "continue", "taskId": " t1 ", "reason": "same trip"})
        assert decision.action == RouteAction.CONTINUE
        assert decision.task_id == "t1"

    def test_continue_without_task_id_is_unusable(self):
        assert decision_from_json({"action": "continue", "reason": "?"}) is None

    def test_respond_with_intent(self):
        decision = decision_from_json({"action": "respond", "response_intent": "memory_query", "reason": "r"})
        assert decision.action == RouteAction.RESPOND
        assert decision.response_intent == ResponseIntent.MEMORY_QUERY

    def test_respond_with_unknown_intent_is_unclear(self):
        decision = decision_from_json({"action": "respond", "responseIntent": "gossip"})
        assert decision.response_intent == ResponseIntent.UNCLEAR
        assert decision.reason == "classifier_no_reason"

    def test_unknown_action(self):
        assert decision_from_json({"action": "delete"}) is None
        assert decision_from_json(["new"]) is None


# ============================================================
# CLASSIFIERS
# ============================================================

@pytest.mark.asyncio
async def test_fallback_classifier_always_new():
    decision = await FallbackNewClassifier().classify("anything", ACTIVE)
    assert decision.action == RouteAction.NEW
    assert decision.reason == UNCONFIGURED_FALLBACK_REASON


@pytest.mark.asyncio
async def test_llm_classifier_parses_reply():
    llm = FakeLLM('{"action": "continue", "task_id": "t2", "reason": "answers the dinner question"}')
    classifier = LLMTaskClassifier(llm)

    decision = await classifier.classify("Italian please", ACTIVE, memory_summary="likes pasta")

    assert decision.action == RouteAction.CONTINUE
    assert decision.task_id == "t2"
    prompt = json.loads(llm.calls[0]["prompt"])
    assert prompt["message"] == "Italian please"
    assert prompt["memory_summary"] == "likes pasta"
    assert [t["task_id"] for t in prompt["active_tasks"]] == ["t1", "t2"]


@pytest.mark.asyncio
async def test_llm_classifier_unparseable_reply_starts_new():
    classifier = LLMTaskClassifier(FakeLLM("I think you should continue"))

    decision = await classifier.classify("hi", ACTIVE)

    assert decision.action == RouteAction.NEW
    assert decision.reason == PARSE_FALLBACK_REASON


@pytest.mark.asyncio
async def test_llm_classifier_propagates_model_errors():
    classifier = LLMTaskClassifier(FakeLLM(RuntimeError("timeout")))

    with pytest.raises(RuntimeError):
        await classifier.classify("hi", ACTIVE)


def test_create_classifier_selects_implementation():
    assert isinstance(create_classifier(None), FallbackNewClassifier)
    assert isinstance(create_classifier(FakeLLM()), LLMTaskClassifier)


# ============================================================
# COMPLETION CLIENT
# ============================================================

@pytest.mark.asyncio
async def test_completion_client_sends_system_and_user_messages():
    client = LLMCompletionClient(api_key="sk-test", base_url="https://llm.example.com/v1", model="router-model")
    completion = Mock()
    completion.choices = [Mock(message=Mock(content='{"action": "new"}'))]
    client.client = Mock()
    client.client.chat.completions.create = AsyncMock(return_value=completion)

    reply = await client.complete(system="sys", prompt="user", temperature=0.2, max_tokens=50)

    assert reply == '{"action": "new"}'
    kwargs = client.client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "router-model"
    assert kwargs["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "user"},
    ]
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 50
