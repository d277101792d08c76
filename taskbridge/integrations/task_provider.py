"""
Task provider HTTP client.

Creates, continues and looks up long-running provider tasks. Requests are
retried on 5xx, 429 and transport errors with bounded attempts and
exponential backoff; everything else raises TaskProviderError immediately.
"""

import base64
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import BaseModel

from config import settings
from ..models.channel import MediaAttachment
from ..utils.retry import PROVIDER_RETRY, retry_with_backoff

logger = logging.getLogger(__name__)


class TaskProviderError(Exception):
    """A provider request failed; carries the HTTP status and body when known."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status >= 500 or self.status == 429

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_task_not_found(self) -> bool:
        return self.status == 404 and "task not found" in (self.body or "").lower()


class CreatedTask(BaseModel):
    task_id: str
    title: Optional[str] = None
    url: Optional[str] = None


class ProviderTaskStatus(BaseModel):
    """Result of a live task lookup."""
    task_id: str
    status: str
    error: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None
    output_text: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


def to_base64_attachments(attachments: Sequence[MediaAttachment]) -> List[Dict[str, str]]:
    """Inline inbound media as data URLs."""
    return [
        {
            "filename": a.file_name,
            "fileData": f"data:{a.mime_type};base64,{base64.b64encode(a.data).decode('ascii')}",
        }
        for a in attachments
    ]


def _last_output_text(output: Any) -> Optional[str]:
    if not isinstance(output, list):
        return None
    for message in reversed(output):
        if not isinstance(message, dict) or message.get("role") != "assistant":
            continue
        for content in message.get("content") or []:
            if isinstance(content, dict) and content.get("type") == "output_text" and content.get("text"):
                return str(content["text"]).strip() or None
    return None


class TaskProviderClient:
    """Async client for the task provider API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        agent_profile: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.provider_api_key
        self.base_url = (base_url or settings.provider_base_url).rstrip("/")
        self.agent_profile = agent_profile if agent_profile is not None else settings.provider_agent_profile
        self.timeout = timeout_seconds or settings.provider_timeout_seconds
        attempts = max_attempts or settings.provider_max_attempts
        self.retry_config = {
            **PROVIDER_RETRY,
            "max_retries": max(0, attempts - 1),
            "base_delay": retry_base_delay if retry_base_delay is not None else settings.provider_retry_base_delay_seconds,
        }
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request_once(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {
            "API_KEY": self.api_key,
            "x-request-id": str(uuid.uuid4()),
            "Content-Type": "application/json",
        }
        try:
            response = await self._get_client().request(
                method, f"{self.base_url}{path}", json=json_body, headers=headers
            )
        except httpx.TransportError as e:
            raise TaskProviderError(f"Provider request failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise TaskProviderError(
                f"Provider request failed with status {response.status_code}",
                status=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TaskProviderError("Provider returned invalid JSON", status=response.status_code, body=response.text) from e

    async def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await retry_with_backoff(
            self._request_once,
            method,
            path,
            json_body,
            retry_on=(TaskProviderError,),
            retry_if=lambda e: e.retryable,
            **self.retry_config,
        )

    def _task_payload(
        self,
        prompt: str,
        attachments: Optional[Sequence[MediaAttachment]] = None,
        connectors: Optional[Sequence[str]] = None,
        task_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "prompt": prompt,
            "taskMode": "adaptive",
            "interactiveMode": True,
            "hideInTaskList": True,
        }
        if self.agent_profile:
            payload["agentProfile"] = self.agent_profile
        if attachments:
            payload["attachments"] = to_base64_attachments(attachments)
        if connectors:
            payload["connectors"] = list(connectors)
        if task_id:
            payload["taskId"] = task_id
        return payload

    async def create_task(
        self,
        prompt: str,
        attachments: Optional[Sequence[MediaAttachment]] = None,
        connectors: Optional[Sequence[str]] = None,
    ) -> CreatedTask:
        data = await self._request("POST", "/v1/tasks", self._task_payload(prompt, attachments, connectors))
        task_id = data.get("task_id") or data.get("id")
        if not task_id:
            raise TaskProviderError("Provider response did not include a task id", body=str(data))
        logger.info(f"Provider task created: {task_id}")
        return CreatedTask(task_id=str(task_id), title=data.get("task_title"), url=data.get("task_url"))

    async def continue_task(
        self,
        task_id: str,
        prompt: str,
        attachments: Optional[Sequence[MediaAttachment]] = None,
        connectors: Optional[Sequence[str]] = None,
    ) -> CreatedTask:
        data = await self._request(
            "POST", "/v1/tasks", self._task_payload(prompt, attachments, connectors, task_id=task_id)
        )
        logger.info(f"Provider task continued: {task_id}")
        return CreatedTask(
            task_id=str(data.get("task_id") or task_id),
            title=data.get("task_title"),
            url=data.get("task_url"),
        )

    async def get_task(self, task_id: str) -> ProviderTaskStatus:
        data = await self._request("GET", f"/v1/tasks/{task_id}")
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        return ProviderTaskStatus(
            task_id=str(data.get("id") or task_id),
            status=str(data.get("status") or "unknown"),
            error=data.get("error"),
            title=metadata.get("task_title"),
            url=metadata.get("task_url"),
            output_text=_last_output_text(data.get("output")),
        )

    async def download(self, url: str) -> Tuple[bytes, Optional[str]]:
        """Fetch an attachment. Returns (bytes, content type header)."""
        async def _fetch() -> Tuple[bytes, Optional[str]]:
            try:
                response = await self._get_client().get(url, follow_redirects=True)
            except httpx.TransportError as e:
                raise TaskProviderError(f"Attachment download failed: {e}") from e
            if response.status_code >= 400:
                raise TaskProviderError(
                    f"Attachment download failed with status {response.status_code}",
                    status=response.status_code,
                    body=response.text[:500],
                )
            return response.content, response.headers.get("content-type")

        return await retry_with_backoff(
            _fetch,
            retry_on=(TaskProviderError,),
            retry_if=lambda e: e.retryable,
            **self.retry_config,
        )
