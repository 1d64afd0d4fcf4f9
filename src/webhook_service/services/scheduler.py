"""Delivery scheduler: one PENDING row per (subscription, event) match."""
from __future__ import annotations

from typing import Callable, Iterable, List

import structlog

from webhook_service.domain.webhooks import PlatformEvent, WebhookDelivery, WebhookSubscription
from webhook_service.repositories.webhooks import WebhookDeliveryRepository
from webhook_service.services.retry import Clock, utcnow

logger = structlog.get_logger(__name__)

# Starts the first attempt of a freshly written row (usually WebhookDispatcher.submit).
Handoff = Callable[[WebhookDelivery], None]


def no_handoff(_delivery: WebhookDelivery) -> None:
    """Leave the row to the periodic sweep."""


class DeliveryScheduler:
    def __init__(
        self,
        deliveries: WebhookDeliveryRepository,
        handoff: Handoff = no_handoff,
        *,
        clock: Clock = utcnow,
    ):
        self._deliveries = deliveries
        self._handoff = handoff
        self._clock = clock

    async def schedule(
        self, event: PlatformEvent, subscriptions: Iterable[WebhookSubscription]
    ) -> List[WebhookDelivery]:
        """Persist a delivery per subscription and hand each one off.

        Returns only rows created by this call; a repeated ``event_id`` is
        absorbed by the unique constraint and hands off nothing.
        """
        created: List[WebhookDelivery] = []
        for subscription in subscriptions:
            delivery = await self._deliveries.create(
                subscription=subscription, event=event, now=self._clock()
            )
            if delivery is None:
                logger.info(
                    "webhook delivery already exists, duplicate event ignored",
                    subscription_id=str(subscription.id),
                    event_id=event.event_id,
                )
                continue
            logger.debug(
                "webhook delivery scheduled",
                delivery_id=str(delivery.id),
                subscription_id=str(subscription.id),
                event_id=event.event_id,
                event_type=event.event_type,
            )
            created.append(delivery)
            self._handoff(delivery)
        return created
