"""
Integration tests for the full message -> task -> webhook -> reply flow.

Tests the complete flow over a wired runtime with in-memory storage:
1. Telegram message is admitted and routed
2. Provider task is opened and acknowledged
3. Provider lifecycle webhooks update the task
4. Results and questions are relayed back to the chat
"""

import pytest

from taskbridge import entrypoints
from taskbridge.connectors.resolver import ResolutionSource
from taskbridge.integrations.connector_catalog import CatalogConnector
from taskbridge.models.routing import DispatchStatus, RouteAction
from taskbridge.runtime import set_runtime

from tests.fakes import WEBHOOK_SECRET, ScriptedClassifier, stop_payload, telegram_message


def created_payload(event_id, task_id, title=None):
    detail = {"task_id": task_id}
    if title:
        detail["task_title"] = title
    return {"event_id": event_id, "event_type": "task_created", "task_detail": detail}


class TestTaskLifecycle:
    """A message becomes a task and its result comes back."""

    @pytest.mark.asyncio
    async def test_summary_request_round_trip(self, runtime, gateway, task_repository, message_repository):
        dispatched = await runtime.dispatcher.dispatch(telegram_message("Summarize the news"))

        assert dispatched.action == RouteAction.NEW
        assert task_repository.rows["t1"].status == "pending"
        assert gateway.texts("555") == ['Got it - working on "Summarize the news" now.']

        created = await runtime.webhook_handler.handle(WEBHOOK_SECRET, created_payload("evt-0", "t1"))
        assert created.status == "processed"
        assert task_repository.rows["t1"].status == "running"

        finished = await runtime.webhook_handler.handle(
            WEBHOOK_SECRET, stop_payload("evt-1", "t1", message="Here is the summary")
        )

        assert finished.status_code == 200
        assert task_repository.rows["t1"].status == "completed"
        assert gateway.texts("555") == [
            'Got it - working on "Summarize the news" now.',
            "Here is the summary",
        ]
        assert len(message_repository.outbound) == 2

    @pytest.mark.asyncio
    async def test_duplicate_finish_is_delivered_once(self, runtime, gateway, webhook_event_repository):
        await runtime.dispatcher.dispatch(telegram_message("Summarize the news"))
        payload = stop_payload("evt-1", "t1", message="Done")

        first = await runtime.webhook_handler.handle(WEBHOOK_SECRET, payload)
        second = await runtime.webhook_handler.handle(WEBHOOK_SECRET, payload)

        assert first.status == "processed"
        assert second.status == "duplicate"
        assert gateway.texts("555").count("Done") == 1
        assert webhook_event_repository.rows["evt-1"].process_status == "processed"

    @pytest.mark.asyncio
    async def test_late_created_event_does_not_reopen_task(self, runtime, task_repository):
        await runtime.dispatcher.dispatch(telegram_message("Summarize the news"))
        await runtime.webhook_handler.handle(WEBHOOK_SECRET, stop_payload("evt-1", "t1", message="Done"))

        late = await runtime.webhook_handler.handle(WEBHOOK_SECRET, created_payload("evt-0", "t1"))

        assert late.status == "processed"
        assert task_repository.rows["t1"].status == "completed"

    @pytest.mark.asyncio
    async def test_event_for_unknown_task_is_ignored(self, runtime, gateway, webhook_event_repository):
        response = await runtime.webhook_handler.handle(
            WEBHOOK_SECRET, stop_payload("evt-9", "someone-else", message="Done")
        )

        assert response.status == "processed"
        assert webhook_event_repository.rows["evt-9"].process_status == "ignored"
        assert gateway.sent_texts == []


class TestClarifyingQuestion:
    """The provider asks a question and the next message answers it."""

    @pytest.mark.asyncio
    async def test_answer_continues_waiting_task(self, runtime, gateway, provider, task_repository):
        await runtime.dispatcher.dispatch(telegram_message("Book a restaurant", message_id=1))
        runtime.router.classifier = ScriptedClassifier()

        await runtime.webhook_handler.handle(
            WEBHOOK_SECRET, stop_payload("evt-1", "t1", message="Italian or Japanese?", stop_reason="ask")
        )

        assert task_repository.rows["t1"].status == "waiting_user"
        assert gateway.texts("555")[-1] == "Italian or Japanese?"

        answer = await runtime.dispatcher.dispatch(telegram_message("Italian", message_id=2))

        assert answer.action == RouteAction.CONTINUE
        assert answer.task_id == "t1"
        assert runtime.router.classifier.calls == []
        assert provider.continued == [{"task_id": "t1", "prompt": "Italian", "attachments": [], "connectors": []}]
        assert task_repository.rows["t1"].status == "running"
        assert len(provider.created) == 1

        await runtime.webhook_handler.handle(
            WEBHOOK_SECRET, stop_payload("evt-2", "t1", message="Booked Trattoria at 8pm")
        )
        assert gateway.texts("555")[-1] == "Booked Trattoria at 8pm"


class TestChannelOutage:
    """Replies produced while Telegram is unreachable are delivered in order later."""

    @pytest.mark.asyncio
    async def test_queued_replies_flush_on_reconnect(self, runtime, gateway):
        await runtime.dispatcher.dispatch(telegram_message("Summarize the news"))
        gateway.connected = False

        await runtime.webhook_handler.handle(WEBHOOK_SECRET, stop_payload("evt-1", "t1", message="Part one"))
        await runtime.webhook_handler.handle(WEBHOOK_SECRET, stop_payload("evt-2", "t1", message="Part two"))

        assert runtime.outbound.queue_depth == 2
        assert gateway.texts("555") == ['Got it - working on "Summarize the news" now.']

        await gateway.reconnect()

        assert runtime.outbound.queue_depth == 0
        assert gateway.texts("555")[1:] == ["Part one", "Part two"]


class TestEntrypoints:
    """The module-level entry points delegate to the runtime singleton."""

    @pytest.fixture(autouse=True)
    def installed(self, runtime):
        set_runtime(runtime)
        yield
        set_runtime(None)

    @pytest.mark.asyncio
    async def test_dispatch_and_handle_webhook(self, gateway):
        dispatched = await entrypoints.dispatch_inbound(telegram_message("Summarize the news"))
        handled = await entrypoints.handle_webhook(WEBHOOK_SECRET, stop_payload("evt-1", "t1", message="Done"))

        assert dispatched.status == DispatchStatus.ROUTED
        assert handled.status == "processed"
        assert gateway.texts("555")[-1] == "Done"

    @pytest.mark.asyncio
    async def test_resolve_connector(self, catalog):
        catalog.connectors = [CatalogConnector(uid="gmail-uid", name="Gmail")]

        resolution = await entrypoints.resolve_connector("session-1", "check my gmail")

        assert resolution.connector_uids == ["gmail-uid"]
        assert resolution.source == ResolutionSource.CATALOG_NAME

    @pytest.mark.asyncio
    async def test_run_cleanup(self, cleanup_repository):
        cleanup_repository.expired["messages"] = 3

        summary = await entrypoints.run_cleanup()

        assert summary.expired_deletes["messages"] == 3
