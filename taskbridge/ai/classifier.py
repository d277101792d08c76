"""
Routing classifiers.

A classifier looks at a message and the session's active tasks and proposes
continue / new / respond. The router validates whatever comes back.
"""

import logging
from typing import Any, Optional, Sequence

from .json_parsing import parse_json_with_fallback
from .prompts import PromptTemplates
from ..models.routing import ActiveTask, ResponseIntent, RouteAction, RouteDecision

logger = logging.getLogger(__name__)


PARSE_FALLBACK_REASON = "classifier_parse_fallback_new"
UNCONFIGURED_FALLBACK_REASON = "classifier_unconfigured_fallback_new"


def decision_from_json(value: Any) -> Optional[RouteDecision]:
    """Convert a decoded classifier reply into a RouteDecision, or None if unusable."""
    if not isinstance(value, dict):
        return None

    action = value.get("action")
    reason = value.get("reason") if isinstance(value.get("reason"), str) else "classifier_no_reason"

    if action == RouteAction.NEW.value:
        return RouteDecision.new(reason)

    if action == RouteAction.CONTINUE.value:
        task_id = value.get("task_id") or value.get("taskId")
        if isinstance(task_id, str) and task_id.strip():
            return RouteDecision.continue_task(task_id.strip(), reason)
        return None

    if action == RouteAction.RESPOND.value:
        raw_intent = value.get("response_intent") or value.get("responseIntent")
        try:
            intent = ResponseIntent(raw_intent)
        except ValueError:
            intent = ResponseIntent.UNCLEAR
        return RouteDecision.respond(intent, reason)

    return None


class FallbackNewClassifier:
    """Deterministic classifier used when no model is configured: always new."""

    async def classify(
        self,
        message: str,
        active_tasks: Sequence[ActiveTask],
        memory_summary: str = "",
    ) -> RouteDecision:
        return RouteDecision.new(UNCONFIGURED_FALLBACK_REASON)


class LLMTaskClassifier:
    """Asks a completion model for a JSON routing decision."""

    def __init__(self, llm_client):
        self.llm = llm_client
        self.prompts = PromptTemplates()

    async def classify(
        self,
        message: str,
        active_tasks: Sequence[ActiveTask],
        memory_summary: str = "",
    ) -> RouteDecision:
        raw = await self.llm.complete(
            system=self.prompts.ROUTER_SYSTEM_PROMPT,
            prompt=self.prompts.router_prompt(message, active_tasks, memory_summary),
        )
        decision = parse_json_with_fallback(raw, decision_from_json)
        if decision is None:
            logger.warning(f"Could not parse classifier reply: {raw[:200] if raw else raw!r}")
            return RouteDecision.new(PARSE_FALLBACK_REASON)
        return decision


def create_classifier(llm_client=None):
    """Pick the classifier implementation for the configured model."""
    if llm_client is None:
        return FallbackNewClassifier()
    return LLMTaskClassifier(llm_client)
