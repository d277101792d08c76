"""
Process-wide runtime registry.

Holds the components that must live for the whole process (rate limiter,
outbound queue, channel connection state) together with everything wired to
them. ``initialize()`` is idempotent so a re-entered process reuses the same
queue and limiter instead of building new ones.
"""

import logging
from typing import Optional

from config import settings
from .ai import (
    LocalResponder,
    MemoryExtractor,
    create_classifier,
    create_llm_client,
    create_personality_renderer,
)
from .bot.inbound import InboundNormalizer
from .bot.outbound import OutboundChannelAdapter
from .bot.telegram_gateway import TelegramChannelGateway
from .connectors.resolver import ConnectorResolver, SessionConnectorMemory
from .database import close_database, init_database
from .database.repositories import (
    get_attachment_repository,
    get_cleanup_repository,
    get_memory_repository,
    get_message_repository,
    get_session_repository,
    get_task_repository,
    get_webhook_event_repository,
)
from .integrations.connector_catalog import CachedConnectorCatalog, RemoteConnectorCatalog
from .integrations.task_provider import TaskProviderClient
from .memory.service import MemoryService
from .orchestration import (
    EventProcessor,
    InboundDispatcher,
    TaskCreationWorkflow,
    TaskRouter,
    WebhookHandler,
)
from .scheduler import CleanupJob, SchedulerManager
from .services.rate_limiter import get_rate_limiter

logger = logging.getLogger(__name__)


class Runtime:
    """Constructor arguments override the default collaborators (used by tests)."""

    def __init__(
        self,
        gateway=None,
        provider=None,
        llm_client=None,
        catalog=None,
        rate_limiter=None,
        session_repository=None,
        message_repository=None,
        task_repository=None,
        webhook_event_repository=None,
        attachment_repository=None,
        memory_repository=None,
        cleanup_repository=None,
    ):
        self._initialized = False
        self._started = False
        self.gateway = gateway
        self.provider = provider
        self.llm_client = llm_client
        self.catalog = catalog
        self.rate_limiter = rate_limiter
        self.sessions = session_repository
        self.messages = message_repository
        self.tasks = task_repository
        self.webhook_events = webhook_event_repository
        self.attachments = attachment_repository
        self.memories = memory_repository
        self.cleanup_repository = cleanup_repository

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> "Runtime":
        """Build and wire every component once."""
        if self._initialized:
            return self

        self.gateway = self.gateway or TelegramChannelGateway()
        self.provider = self.provider or TaskProviderClient()
        self.llm_client = self.llm_client or create_llm_client()
        self.catalog = self.catalog or CachedConnectorCatalog(RemoteConnectorCatalog())
        self.rate_limiter = self.rate_limiter or get_rate_limiter()

        self.sessions = self.sessions or get_session_repository()
        self.messages = self.messages or get_message_repository()
        self.tasks = self.tasks or get_task_repository()
        self.webhook_events = self.webhook_events or get_webhook_event_repository()
        self.attachments = self.attachments or get_attachment_repository()
        self.memories = self.memories or get_memory_repository()
        self.cleanup_repository = self.cleanup_repository or get_cleanup_repository()

        self.outbound = OutboundChannelAdapter(self.gateway)
        self.gateway.add_reconnect_listener(self.outbound.flush)

        self.classifier = create_classifier(self.llm_client)
        self.personality = create_personality_renderer(self.llm_client, settings.agent_personality)
        self.local_responder = LocalResponder(self.llm_client, settings.agent_personality or None)
        extractor = MemoryExtractor(self.llm_client) if self.llm_client is not None else None
        self.memory_service = MemoryService(self.memories, extractor)

        self.connector_resolver = ConnectorResolver(
            catalog=self.catalog,
            session_memory=SessionConnectorMemory(self.sessions),
            manual_aliases=settings.manual_connector_alias_map,
            enabled_connector_uids=settings.enabled_connector_uid_list,
        )
        self.router = TaskRouter(self.classifier, self.messages)
        self.task_creation = TaskCreationWorkflow(
            provider=self.provider,
            task_repository=self.tasks,
            message_repository=self.messages,
            outbound=self.outbound,
            personality=self.personality,
            memory_repository=self.memories,
        )
        self.normalizer = InboundNormalizer(self.gateway, self.rate_limiter, self.sessions, self.messages)
        self.dispatcher = InboundDispatcher(
            normalizer=self.normalizer,
            router=self.router,
            task_creation=self.task_creation,
            provider=self.provider,
            task_repository=self.tasks,
            message_repository=self.messages,
            outbound=self.outbound,
            connector_resolver=self.connector_resolver,
            local_responder=self.local_responder,
            memory_service=self.memory_service,
            memory_repository=self.memories,
        )
        self.event_processor = EventProcessor(
            task_repository=self.tasks,
            session_repository=self.sessions,
            message_repository=self.messages,
            attachment_repository=self.attachments,
            outbound=self.outbound,
            downloader=self.provider,
            personality=self.personality,
            memory_service=self.memory_service,
        )
        self.webhook_handler = WebhookHandler(self.webhook_events, self.event_processor)
        self.cleanup_job = CleanupJob(
            cleanup_repository=self.cleanup_repository,
            task_repository=self.tasks,
            message_repository=self.messages,
            outbound=self.outbound,
            provider=self.provider,
            memory_repository=self.memories,
        )
        self.scheduler = SchedulerManager(self.cleanup_job, self.gateway, self.outbound)

        self._initialized = True
        logger.info("Runtime initialized")
        return self

    async def start(self) -> None:
        """Connect external resources. Each step is allowed to fail on its own."""
        self.initialize()
        if self._started:
            return

        try:
            if await init_database():
                logger.info("PostgreSQL database initialized")
            else:
                logger.warning("PostgreSQL not configured or failed to initialize")
        except Exception as e:
            logger.warning(f"PostgreSQL init failed: {e}")

        try:
            if await self.gateway.initialize() and settings.webhook_base_url:
                await self.gateway.set_webhook(settings.telegram_webhook_secret or None)
        except Exception as e:
            logger.error(f"Telegram init failed (health check will retry): {e}")

        self.scheduler.start()
        self._started = True

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        try:
            self.scheduler.stop()
        except Exception as e:
            logger.warning(f"Failed to stop scheduler during shutdown: {e}")

        try:
            await self.gateway.shutdown()
        except Exception as e:
            logger.warning(f"Failed to stop Telegram gateway during shutdown: {e}")

        try:
            await self.provider.close()
        except Exception as e:
            logger.warning(f"Failed to close provider client during shutdown: {e}")

        try:
            await close_database()
        except Exception as e:
            logger.warning(f"Failed to close database during shutdown: {e}")

        self._started = False


# Singleton
_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    """Get the initialized runtime singleton."""
    global _runtime
    if _runtime is None:
        _runtime = Runtime()
    return _runtime.initialize()


def set_runtime(runtime: Optional[Runtime]) -> None:
    """Replace the singleton (tests, embedding)."""
    global _runtime
    _runtime = runtime
