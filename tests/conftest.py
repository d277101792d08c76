"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime

import pytest
import pytz

from taskbridge.bot.outbound import OutboundChannelAdapter
from taskbridge.runtime import Runtime
from taskbridge.services.rate_limiter import RateLimitConfig, RateLimiter

from tests.fakes import (
    WEBHOOK_SECRET,
    FakeAttachmentRepository,
    FakeCatalog,
    FakeCleanupRepository,
    FakeGateway,
    FakeMemoryRepository,
    FakeMessageRepository,
    FakeProvider,
    FakeSessionRepository,
    FakeTaskRepository,
    FakeWebhookEventRepository,
)


@pytest.fixture
def now():
    """Fixed reference time for deterministic TTLs."""
    return datetime(2026, 10, 19, 12, 0, 0, tzinfo=pytz.UTC)


@pytest.fixture
def session_repository():
    return FakeSessionRepository()


@pytest.fixture
def message_repository():
    return FakeMessageRepository()


@pytest.fixture
def task_repository(session_repository):
    return FakeTaskRepository(session_repository)


@pytest.fixture
def webhook_event_repository():
    return FakeWebhookEventRepository()


@pytest.fixture
def attachment_repository():
    return FakeAttachmentRepository()


@pytest.fixture
def memory_repository(now):
    return FakeMemoryRepository(clock=lambda: now)


@pytest.fixture
def cleanup_repository():
    return FakeCleanupRepository()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def rate_limiter():
    return RateLimiter(RateLimitConfig(requests=100, window_seconds=60))


@pytest.fixture
def outbound(gateway):
    return OutboundChannelAdapter(gateway, max_chunk_length=4096)


@pytest.fixture
def runtime(
    gateway,
    provider,
    catalog,
    rate_limiter,
    session_repository,
    message_repository,
    task_repository,
    webhook_event_repository,
    attachment_repository,
    memory_repository,
    cleanup_repository,
):
    """Fully wired runtime over in-memory fakes, with no completion model."""
    runtime = Runtime(
        gateway=gateway,
        provider=provider,
        catalog=catalog,
        rate_limiter=rate_limiter,
        session_repository=session_repository,
        message_repository=message_repository,
        task_repository=task_repository,
        webhook_event_repository=webhook_event_repository,
        attachment_repository=attachment_repository,
        memory_repository=memory_repository,
        cleanup_repository=cleanup_repository,
    ).initialize()
    runtime.webhook_handler.expected_secret = WEBHOOK_SECRET
    return runtime

