"""Routing decisions and dispatch results."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RouteAction(str, Enum):
    CONTINUE = "continue"
    NEW = "new"
    RESPOND = "respond"


class ResponseIntent(str, Enum):
    """Why a message can be answered without starting provider work."""
    MEMORY_QUERY = "memory_query"
    MEMORY_WRITE = "memory_write"
    CHITCHAT = "chitchat"
    TASK_QUERY = "task_query"
    UNCLEAR = "unclear"


class ActiveTask(BaseModel):
    """Summary of an in-flight task used by the router and classifier."""
    task_id: str
    title: str
    original_prompt: str
    status: str
    last_message: Optional[str] = None
    stop_reason: Optional[str] = None


class RouteDecision(BaseModel):
    action: RouteAction
    reason: str
    task_id: Optional[str] = None
    response_intent: Optional[ResponseIntent] = None

    @classmethod
    def new(cls, reason: str) -> "RouteDecision":
        return cls(action=RouteAction.NEW, reason=reason)

    @classmethod
    def continue_task(cls, task_id: str, reason: str) -> "RouteDecision":
        return cls(action=RouteAction.CONTINUE, task_id=task_id, reason=reason)

    @classmethod
    def respond(cls, intent: ResponseIntent, reason: str) -> "RouteDecision":
        return cls(action=RouteAction.RESPOND, reason=reason, response_intent=intent)


class DispatchStatus(str, Enum):
    ROUTED = "routed"
    RATE_LIMITED = "rate_limited"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class DispatchResult(BaseModel):
    """What happened to one inbound channel message."""
    status: DispatchStatus
    action: Optional[RouteAction] = None
    reason: Optional[str] = None
    task_id: Optional[str] = None
    session_id: Optional[str] = None
    message_id: Optional[str] = None
    reply_text: Optional[str] = None
