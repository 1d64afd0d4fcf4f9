"""Dead letter queue: inspection and manual resurrection."""
from __future__ import annotations

from typing import List, Tuple
from uuid import UUID

import structlog

from webhook_service.domain.webhooks import WebhookDelivery
from webhook_service.repositories.webhooks import WebhookDeliveryRepository
from webhook_service.services.retry import Clock, utcnow
from webhook_service.services.scheduler import Handoff, no_handoff

logger = structlog.get_logger(__name__)


class DeadLetterService:
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

    async def list_dead_lettered(
        self, *, limit: int = 20, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        return await self._deliveries.list_dead_lettered(limit=limit, offset=offset)

    async def retry_dead_lettered_delivery(self, delivery_id: UUID) -> WebhookDelivery:
        """Reset a dead-lettered delivery to a fresh PENDING budget and resend it.

        Raises ``NotFoundError`` for an unknown id and
        ``InvalidStatusTransitionError`` when the delivery is not dead-lettered.
        """
        delivery = await self._deliveries.reset_dead_lettered(delivery_id, now=self._clock())
        logger.info(
            "webhook delivery requeued from dead letter queue",
            delivery_id=str(delivery.id),
            subscription_id=str(delivery.subscription_id),
        )
        self._handoff(delivery)
        return delivery
