"""
Unit tests for the task provider HTTP client.

Uses httpx.MockTransport so request shapes and the retry policy are
exercised without a network.
"""

import base64
import json

import httpx
import pytest

from taskbridge.integrations.task_provider import (
    TaskProviderClient,
    TaskProviderError,
    to_base64_attachments,
)
from taskbridge.models.channel import MediaAttachment, MediaKind


class Recorder:
    """Transport handler replaying scripted responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(recorder, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return TaskProviderClient(
        api_key="key-123",
        base_url="https://provider.example.com/",
        agent_profile=kwargs.pop("agent_profile", "speed"),
        max_attempts=kwargs.pop("max_attempts", 3),
        retry_base_delay=0,
        http_client=http,
        **kwargs,
    )


ATTACHMENT = MediaAttachment(
    kind=MediaKind.IMAGE, mime_type="image/png", file_name="shot.png", data=b"png-bytes", size_bytes=9
)


def test_to_base64_attachments():
    encoded = to_base64_attachments([ATTACHMENT])
    assert encoded == [{
        "filename": "shot.png",
        "fileData": f"data:image/png;base64,{base64.b64encode(b'png-bytes').decode('ascii')}",
    }]


class TestErrorClassification:
    def test_retryable(self):
        assert TaskProviderError("x", status=503).retryable
        assert TaskProviderError("x", status=429).retryable
        assert TaskProviderError("x").retryable
        assert not TaskProviderError("x", status=400).retryable

    def test_task_not_found(self):
        assert TaskProviderError("x", status=404, body='{"error": "Task not found"}').is_task_not_found
        assert not TaskProviderError("x", status=404, body="route missing").is_task_not_found
        assert TaskProviderError("x", status=404, body="route missing").is_not_found


@pytest.mark.asyncio
async def test_create_task_request_shape():
    recorder = Recorder(httpx.Response(200, json={"task_id": "t1", "task_title": "News", "task_url": "https://u/t1"}))
    client = make_client(recorder)

    created = await client.create_task("Summarize the news", attachments=[ATTACHMENT], connectors=["gmail-uid"])

    assert created.task_id == "t1"
    assert created.title == "News"
    assert created.url == "https://u/t1"
    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://provider.example.com/v1/tasks"
    assert request.headers["API_KEY"] == "key-123"
    assert request.headers["x-request-id"]
    body = json.loads(request.content)
    assert body["prompt"] == "Summarize the news"
    assert body["agentProfile"] == "speed"
    assert body["interactiveMode"] is True
    assert body["connectors"] == ["gmail-uid"]
    assert body["attachments"][0]["filename"] == "shot.png"
    assert "taskId" not in body
    await client.close()


@pytest.mark.asyncio
async def test_continue_task_sends_task_id():
    recorder = Recorder(httpx.Response(200, json={}))
    client = make_client(recorder, agent_profile="")

    continued = await client.continue_task("t1", "Italian")

    body = json.loads(recorder.requests[0].content)
    assert body["taskId"] == "t1"
    assert "agentProfile" not in body
    assert "attachments" not in body
    assert continued.task_id == "t1"
    await client.close()


@pytest.mark.asyncio
async def test_create_task_without_id_fails():
    client = make_client(Recorder(httpx.Response(200, json={"ok": True})))

    with pytest.raises(TaskProviderError):
        await client.create_task("hi")
    await client.close()


@pytest.mark.asyncio
async def test_retries_server_errors_then_succeeds():
    recorder = Recorder(
        httpx.Response(502, text="bad gateway"),
        httpx.ConnectError("reset"),
        httpx.Response(200, json={"id": "t7"}),
    )
    client = make_client(recorder)

    created = await client.create_task("hi")

    assert created.task_id == "t7"
    assert len(recorder.requests) == 3
    await client.close()


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    recorder = Recorder(httpx.Response(500), httpx.Response(500))
    client = make_client(recorder, max_attempts=2)

    with pytest.raises(TaskProviderError) as exc_info:
        await client.create_task("hi")

    assert exc_info.value.status == 500
    assert len(recorder.requests) == 2
    await client.close()


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    recorder = Recorder(httpx.Response(404, json={"error": "Task not found"}))
    client = make_client(recorder)

    with pytest.raises(TaskProviderError) as exc_info:
        await client.continue_task("t-gone", "hello")

    assert exc_info.value.is_task_not_found
    assert len(recorder.requests) == 1
    await client.close()


@pytest.mark.asyncio
async def test_get_task_reads_status_and_last_output():
    recorder = Recorder(httpx.Response(200, json={
        "id": "t1",
        "status": "completed",
        "metadata": {"task_title": "News", "task_url": "https://u/t1"},
        "output": [
            {"role": "assistant", "content": [{"type": "output_text", "text": "first"}]},
            {"role": "user", "content": [{"type": "output_text", "text": "ignored"}]},
            {"role": "assistant", "content": [{"type": "output_text", "text": " Here is the summary "}]},
        ],
    }))
    client = make_client(recorder)

    status = await client.get_task("t1")

    assert recorder.requests[0].method == "GET"
    assert str(recorder.requests[0].url) == "https://provider.example.com/v1/tasks/t1"
    assert status.status == "completed"
    assert status.is_terminal
    assert status.title == "News"
    assert status.output_text == "Here is the summary"
    await client.close()


@pytest.mark.asyncio
async def test_download_returns_bytes_and_content_type():
    recorder = Recorder(httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"}))
    client = make_client(recorder)

    data, content_type = await client.download("https://files.example.com/report.pdf")

    assert data == b"%PDF"
    assert content_type == "application/pdf"
    await client.close()


@pytest.mark.asyncio
async def test_download_failure_raises():
    client = make_client(Recorder(httpx.Response(403, text="expired")))

    with pytest.raises(TaskProviderError) as exc_info:
        await client.download("https://files.example.com/report.pdf")

    assert exc_info.value.status == 403
    await client.close()
