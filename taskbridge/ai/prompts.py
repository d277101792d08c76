"""Prompt templates for the router, personality renderer, local responder and memory extractor."""

import json
from typing import Any, Dict, List, Optional, Sequence

from ..models.memory import MemoryRecord
from ..models.routing import ActiveTask

# Cap on tasks sent to the classifier
MAX_CLASSIFIER_TASKS = 20


class PromptTemplates:
    """Collection of prompt templates for the chat task bridge."""

    ROUTER_SYSTEM_PROMPT = " ".join([
        "You are a message router for a Telegram AI assistant.",
        "Given currently active tasks, memory summary, and a new user message, decide continue/new/respond.",
        "Respond with JSON only.",
        "Valid JSON schemas:",
        '{ "action": "continue", "task_id": "<id>", "reason": "..." }',
        '{ "action": "new", "reason": "..." }',
        '{ "action": "respond", "reason": "...", "response_intent": "memory_query|memory_write|chitchat|task_query|unclear" }',
        "Use respond for memory questions, memory writes, chitchat, task-history questions, or unclear prompts needing clarification.",
        "Use new for substantive tasks requiring tooling/research/build work.",
        "When in doubt between respond and new, choose new.",
    ])

    ACKNOWLEDGEMENT_SYSTEM_PROMPT = " ".join([
        "You write acknowledgement messages for a Telegram assistant.",
        'Respond with JSON only: {"text":"..."}.',
        "Keep it concise (max 160 chars), natural, and do not use markdown.",
        "Do not add facts that were not provided.",
    ])

    RESULT_SYSTEM_PROMPT = " ".join([
        "You rewrite task result messages for a Telegram assistant.",
        'Respond with JSON only: {"text":"..."}.',
        "Preserve core meaning, links, and user-actionable details.",
        "Do not invent new facts or omit critical details.",
    ])

    LOCAL_RESPONSE_SYSTEM_PROMPT = " ".join([
        "You are a Telegram assistant giving direct responses without tools.",
        "Use only provided memory context and user message.",
        "If uncertain, set escalate=true.",
        'Respond with JSON only: {"text":"...","escalate":boolean}.',
        "Keep responses concise and natural.",
    ])

    EXTRACTION_SYSTEM_PROMPT = " ".join([
        "You extract memorable facts from completed task interactions.",
        'Return JSON only, with schema: {"memories":[{"category":"preference|fact|decision|task_outcome|correction","content":"...","confidence":0.0-1.0}]}',
        "Only include genuinely useful information that improves future responses.",
        'If nothing is worth remembering, return {"memories":[]}.',
        "Never fabricate facts.",
    ])

    @staticmethod
    def _dump(payload: Dict[str, Any]) -> str:
        return json.dumps(payload, indent=2, ensure_ascii=False)

    @staticmethod
    def router_prompt(message: str, active_tasks: Sequence[ActiveTask], memory_summary: str = "") -> str:
        tasks = [
            {
                "task_id": task.task_id,
                "task_title": task.title,
                "original_prompt": task.original_prompt,
                "status": task.status,
                "last_message": task.last_message,
            }
            for task in list(active_tasks)[:MAX_CLASSIFIER_TASKS]
        ]
        return PromptTemplates._dump({
            "message": message,
            "memory_summary": memory_summary,
            "active_tasks": tasks,
        })

    @staticmethod
    def acknowledgement_prompt(personality: str, task_title: str) -> str:
        return PromptTemplates._dump({
            "personality_markdown": personality,
            "task_title": task_title,
            "instruction": "Write a short acknowledgement that confirms work has started.",
        })

    @staticmethod
    def result_prompt(personality: str, result_text: str) -> str:
        return PromptTemplates._dump({
            "personality_markdown": personality,
            "original_result_text": result_text,
            "instruction": "Rewrite this for delivery in Telegram using the personality.",
        })

    @staticmethod
    def local_response_prompt(
        personality: Optional[str],
        message: str,
        intent: str,
        memories: Sequence[MemoryRecord],
    ) -> str:
        return PromptTemplates._dump({
            "personality_markdown": personality or "",
            "message": message,
            "intent": intent,
            "memories": [
                {"category": m.category.value, "content": m.content, "confidence": m.confidence}
                for m in memories
            ],
        })

    @staticmethod
    def extraction_prompt(
        user_request: str,
        task_title: Optional[str],
        task_result: str,
        existing_memories: List[str],
    ) -> str:
        return PromptTemplates._dump({
            "user_request": user_request,
            "task_title": task_title,
            "task_result": task_result,
            "existing_memories": existing_memories,
        })
