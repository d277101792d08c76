"""
Provider webhook handler.

Boundary checks (secret, payload shape), then the idempotency ledger, then
the event processor. The ledger insert is the only concurrency guard: an
event id that is already recorded is answered as a duplicate and never
processed again, even if the earlier attempt failed.
"""

import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

from config import settings
from ..models.events import WebhookEvent, parse_webhook_payload
from ..utils.background_tasks import create_safe_task
from ..utils.datetime_utils import days_from, utc_now
from .event_processor import ProcessOutcome

logger = logging.getLogger(__name__)


@dataclass
class WebhookResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return self.body.get("status", "")


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time compare; an unset expected secret never matches."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.strip().encode("utf-8"), expected.encode("utf-8"))


class WebhookHandler:
    def __init__(self, event_repository, processor, expected_secret: Optional[str] = None):
        self.events = event_repository
        self.processor = processor
        self.expected_secret = expected_secret if expected_secret is not None else settings.provider_webhook_secret

    async def _admit(
        self, secret: Optional[str], payload: Any, now: datetime
    ) -> Union[WebhookResponse, WebhookEvent]:
        """Returns the event to process, or the response that ends the request."""
        if not secrets_match(secret, self.expected_secret):
            logger.warning("Rejected provider webhook with invalid secret")
            return WebhookResponse(401, {"status": "unauthorized"})

        event = parse_webhook_payload(payload)
        if event is None:
            logger.warning("Rejected provider webhook with invalid payload")
            return WebhookResponse(400, {"status": "invalid_payload"})

        inserted = await self.events.insert_if_new(
            event,
            received_at=now,
            expires_at=days_from(now, settings.webhook_event_ttl_days),
        )
        if not inserted:
            logger.info(f"Duplicate webhook event {event.event_id}")
            return WebhookResponse(200, {"status": "duplicate", "event_id": event.event_id})

        return event

    async def _process(self, event: WebhookEvent) -> Tuple[bool, Optional[str]]:
        """Run the processor and settle the ledger row. Returns (ok, error)."""
        try:
            outcome = await self.processor.process(event)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"Webhook event {event.event_id} ({event.event_type.value}) failed: {error}", exc_info=True)
            await self.events.mark_failed(event.event_id, utc_now(), error)
            return False, error

        if outcome == ProcessOutcome.IGNORED:
            await self.events.mark_ignored(event.event_id, utc_now())
        else:
            await self.events.mark_processed(event.event_id, utc_now())
        logger.info(f"Webhook event {event.event_id} ({event.event_type.value}) {outcome.value}")
        return True, None

    async def handle(self, secret: Optional[str], payload: Any, now: Optional[datetime] = None) -> WebhookResponse:
        """Validate, record and process an event before returning."""
        admitted = await self._admit(secret, payload, now or utc_now())
        if isinstance(admitted, WebhookResponse):
            return admitted

        ok, error = await self._process(admitted)
        if not ok:
            return WebhookResponse(500, {"status": "failed", "event_id": admitted.event_id, "error": error})
        return WebhookResponse(200, {"status": "processed", "event_id": admitted.event_id})

    async def accept(self, secret: Optional[str], payload: Any, now: Optional[datetime] = None) -> WebhookResponse:
        """Validate and record an event, then process it in the background."""
        admitted = await self._admit(secret, payload, now or utc_now())
        if isinstance(admitted, WebhookResponse):
            return admitted

        create_safe_task(self._process(admitted), f"webhook_{admitted.event_id}")
        return WebhookResponse(202, {"status": "accepted", "event_id": admitted.event_id})
