"""Webhook subscription management."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Type, TypeVar
from urllib.parse import urlsplit
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from webhook_service import signing
from webhook_service.core.exceptions import SubscriptionValidationError
from webhook_service.domain.dto import SubscriptionCreateDTO, SubscriptionUpdateDTO
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.webhooks import PlatformEvent, WebhookDelivery, WebhookSubscription
from webhook_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)
from webhook_service.services.ingress import EventIngress
from webhook_service.services.retry import Clock, utcnow

logger = structlog.get_logger(__name__)

RECENT_DELIVERIES_LIMIT = 10

TDTO = TypeVar("TDTO", bound=BaseModel)


def parse_dto(model: Type[TDTO], payload: Mapping[str, Any] | TDTO) -> TDTO:
    """Validate *payload*, re-raising pydantic errors as SubscriptionValidationError."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        raise SubscriptionValidationError(
            "Invalid webhook subscription", errors=errors
        ) from exc


@dataclass
class DeliveryStatistics:
    success: int = 0
    failed: int = 0
    dead_lettered: int = 0
    pending: int = 0

    @classmethod
    def from_counts(cls, counts: Mapping[DeliveryStatus, int]) -> "DeliveryStatistics":
        return cls(
            success=counts.get(DeliveryStatus.DELIVERED, 0),
            failed=counts.get(DeliveryStatus.FAILED, 0),
            dead_lettered=counts.get(DeliveryStatus.DEAD_LETTERED, 0),
            pending=counts.get(DeliveryStatus.PENDING, 0),
        )

    def to_json(self) -> dict[str, int]:
        return {
            "success": self.success,
            "failed": self.failed,
            "deadLettered": self.dead_lettered,
            "pending": self.pending,
        }


@dataclass
class SubscriptionDetail:
    subscription: WebhookSubscription
    recent_deliveries: List[WebhookDelivery]
    statistics: DeliveryStatistics


class WebhookService:
    def __init__(
        self,
        subscription_repository: WebhookSubscriptionRepository,
        delivery_repository: WebhookDeliveryRepository,
        ingress: EventIngress,
        *,
        clock: Clock = utcnow,
    ):
        self._subscriptions = subscription_repository
        self._deliveries = delivery_repository
        self._ingress = ingress
        self._clock = clock

    async def create_subscription(
        self, payload: Mapping[str, Any] | SubscriptionCreateDTO
    ) -> tuple[WebhookSubscription, str]:
        """Register a subscription. The secret is returned here and nowhere else."""
        dto = parse_dto(SubscriptionCreateDTO, payload)
        secret = signing.generate_secret()
        subscription = await self._subscriptions.create(
            url=dto.url,
            event_filter=dto.event_filter,
            secret=secret,
            max_retries=dto.max_retries,
            retry_delay_seconds=dto.retry_delay_seconds,
            is_active=dto.is_active,
            now=self._clock(),
        )
        logger.info(
            "webhook subscription created",
            subscription_id=str(subscription.id),
            url_host=urlsplit(subscription.url).hostname,
            is_active=subscription.is_active,
        )
        if dto.test_payload:
            # the secret is only ever returned here
            try:
                await self._ingress.emit_test_event(subscription.id)
            except Exception:
                logger.exception(
                    "webhook test event emission failed",
                    subscription_id=str(subscription.id),
                )
        return subscription, secret

    async def list_subscriptions(
        self, *, limit: int = 20, offset: int = 0, is_active: bool | None = None
    ) -> tuple[List[WebhookSubscription], int]:
        return await self._subscriptions.list_paginated(
            limit=limit, offset=offset, is_active=is_active
        )

    async def get_subscription_detail(self, subscription_id: UUID) -> SubscriptionDetail:
        subscription = await self._subscriptions.get(subscription_id)
        recent = await self._deliveries.list_recent_for_subscription(
            subscription_id, limit=RECENT_DELIVERIES_LIMIT
        )
        counts = await self._deliveries.count_by_status(subscription_id)
        return SubscriptionDetail(
            subscription=subscription,
            recent_deliveries=recent,
            statistics=DeliveryStatistics.from_counts(counts),
        )

    async def update_subscription(
        self, subscription_id: UUID, payload: Mapping[str, Any] | SubscriptionUpdateDTO
    ) -> WebhookSubscription:
        """Partial update. Existing deliveries keep their retry snapshot."""
        dto = parse_dto(SubscriptionUpdateDTO, payload)
        changes = dto.changes()
        if not changes:
            return await self._subscriptions.get(subscription_id)
        subscription = await self._subscriptions.update(
            subscription_id, changes, now=self._clock()
        )
        logger.info(
            "webhook subscription updated",
            subscription_id=str(subscription_id),
            fields=sorted(changes),
        )
        return subscription

    async def deactivate_subscription(self, subscription_id: UUID) -> WebhookSubscription:
        subscription = await self._subscriptions.deactivate(subscription_id, now=self._clock())
        logger.info("webhook subscription deactivated", subscription_id=str(subscription_id))
        return subscription

    async def send_test_event(
        self, subscription_id: UUID
    ) -> tuple[PlatformEvent, List[WebhookDelivery]]:
        return await self._ingress.emit_test_event(subscription_id)
