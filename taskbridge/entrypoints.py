"""Entry points exposed to the HTTP layer and the scheduler."""

from typing import Any, Dict, Optional

from .connectors.resolver import ConnectorResolution
from .models.routing import DispatchResult
from .orchestration.webhook_handler import WebhookResponse
from .runtime import get_runtime
from .scheduler.cleanup import CleanupSummary


async def handle_webhook(secret: Optional[str], payload: Any) -> WebhookResponse:
    """Validate, record and process a provider webhook before returning."""
    return await get_runtime().webhook_handler.handle(secret, payload)


async def accept_webhook(secret: Optional[str], payload: Any) -> WebhookResponse:
    """Validate and record a provider webhook; processing continues in the background."""
    return await get_runtime().webhook_handler.accept(secret, payload)


async def dispatch_inbound(raw: Dict[str, Any]) -> DispatchResult:
    return await get_runtime().dispatcher.dispatch(raw)


async def run_cleanup() -> CleanupSummary:
    return await get_runtime().cleanup_job.run()


async def resolve_connector(session_id: str, text: str) -> ConnectorResolution:
    return await get_runtime().connector_resolver.resolve(session_id, text)
