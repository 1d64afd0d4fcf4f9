"""Event ingress: the single entry point producers call."""
from __future__ import annotations

from typing import List
from uuid import UUID, uuid4

import structlog

from webhook_service.domain.webhooks import PlatformEvent, WebhookDelivery
from webhook_service.repositories.webhooks import WebhookSubscriptionRepository
from webhook_service.services.matcher import match_subscriptions
from webhook_service.services.retry import Clock, utcnow
from webhook_service.services.scheduler import DeliveryScheduler

logger = structlog.get_logger(__name__)

TEST_EVENT_TYPE = "WEBHOOK_TEST"
TEST_EVENT_CATEGORY = "SYSTEM"


class EventIngress:
    """Fans an event out to matching subscriptions without blocking the producer."""

    def __init__(
        self,
        subscriptions: WebhookSubscriptionRepository,
        scheduler: DeliveryScheduler,
        *,
        clock: Clock = utcnow,
    ):
        self._subscriptions = subscriptions
        self._scheduler = scheduler
        self._clock = clock

    async def emit_event(self, event: PlatformEvent) -> List[WebhookDelivery]:
        """Create deliveries for every active matching subscription.

        Never raises: failures are logged and an empty list is returned.
        Rows already written before the failure are picked up by the sweep.
        """
        log = logger.bind(event_id=event.event_id, event_type=event.event_type)
        try:
            active = await self._subscriptions.list_active()
            matched = match_subscriptions(event, active)
            if not matched:
                log.debug("webhook event matched no subscriptions")
                return []
            deliveries = await self._scheduler.schedule(event, matched)
        except Exception:
            log.exception("webhook event emission failed")
            return []
        log.info("webhook event emitted", matched=len(matched), created=len(deliveries))
        return deliveries

    async def emit_test_event(self, subscription_id: UUID) -> tuple[PlatformEvent, List[WebhookDelivery]]:
        """Send a ``WEBHOOK_TEST`` event to one subscription.

        Unlike :meth:`emit_event` an unknown subscription raises
        ``NotFoundError``; this is an operator action, not a producer call.
        """
        subscription = await self._subscriptions.get(subscription_id)
        event = PlatformEvent(
            event_id=f"webhook-test-{uuid4()}",
            event_type=TEST_EVENT_TYPE,
            event_category=TEST_EVENT_CATEGORY,
            timestamp=self._clock(),
            data={
                "message": "This is a test webhook event",
                "webhookId": str(subscription.id),
            },
        )
        deliveries = await self._scheduler.schedule(event, [subscription])
        logger.info(
            "webhook test event emitted",
            subscription_id=str(subscription.id),
            event_id=event.event_id,
        )
        return event, deliveries
