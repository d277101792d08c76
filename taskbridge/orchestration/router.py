"""
Task router.

Decides whether an inbound message continues one of the session's active
tasks, starts a new one, or can be answered locally. Two cheap deterministic
rules run before the classifier:

1. No active tasks -> new
2. Exactly one task waiting on the user after an "ask" -> continue it

Everything else is delegated to the classifier, whose answer is validated
against the active set.
"""

import logging
from typing import Optional, Sequence

from ..models.routing import ActiveTask, RouteAction, RouteDecision

logger = logging.getLogger(__name__)

NO_ACTIVE_TASKS_REASON = "no_active_tasks"
SINGLE_WAITING_ASK_REASON = "single_waiting_user_task"
CLASSIFIER_ERROR_FALLBACK_REASON = "classifier_error_fallback_new"
CLASSIFIER_INVALID_FALLBACK_REASON = "classifier_invalid_fallback_new"
UNKNOWN_TASK_REASON_PREFIX = "classifier_rejected_unknown_task:"


def _single_waiting_ask(active_tasks: Sequence[ActiveTask]) -> Optional[ActiveTask]:
    if len(active_tasks) != 1:
        return None
    task = active_tasks[0]
    if task.status == "waiting_user" and task.stop_reason == "ask":
        return task
    return None


def validate_decision(decision: RouteDecision, active_tasks: Sequence[ActiveTask]) -> RouteDecision:
    """Reject a continue that points outside the active set."""
    if decision.action != RouteAction.CONTINUE:
        return decision
    if any(task.task_id == decision.task_id for task in active_tasks):
        return decision
    return RouteDecision.new(f"{UNKNOWN_TASK_REASON_PREFIX}{decision.task_id}")


class TaskRouter:
    def __init__(self, classifier, message_repository=None):
        self.classifier = classifier
        self.messages = message_repository

    async def route(
        self,
        message: str,
        active_tasks: Sequence[ActiveTask],
        message_id: Optional[str] = None,
        memory_summary: str = "",
    ) -> RouteDecision:
        decision = await self._decide(message, list(active_tasks), memory_summary)
        logger.info(
            f"Routed message {message_id or '-'}: {decision.action.value} "
            f"task={decision.task_id or '-'} reason={decision.reason}"
        )
        await self._persist(message_id, decision)
        return decision

    async def _decide(self, message: str, active_tasks: list, memory_summary: str) -> RouteDecision:
        if not active_tasks:
            return RouteDecision.new(NO_ACTIVE_TASKS_REASON)

        waiting = _single_waiting_ask(active_tasks)
        if waiting is not None:
            return RouteDecision.continue_task(waiting.task_id, SINGLE_WAITING_ASK_REASON)

        try:
            decision = await self.classifier.classify(message, active_tasks, memory_summary)
        except Exception as e:
            logger.warning(f"Classifier failed, starting a new task: {e}")
            return RouteDecision.new(CLASSIFIER_ERROR_FALLBACK_REASON)

        if not isinstance(decision, RouteDecision):
            return RouteDecision.new(CLASSIFIER_INVALID_FALLBACK_REASON)

        return validate_decision(decision, active_tasks)

    async def _persist(self, message_id: Optional[str], decision: RouteDecision) -> None:
        """Audit trail only; a failure here never changes the decision."""
        if not message_id or self.messages is None:
            return
        try:
            await self.messages.persist_route_decision(
                message_id=message_id,
                action=decision.action.value,
                reason=decision.reason,
                task_id=decision.task_id if decision.action == RouteAction.CONTINUE else None,
            )
        except Exception as e:
            logger.error(f"Failed to persist route decision for message {message_id}: {e}")
