"""Retry/backoff controller: drives a delivery from PENDING to a terminal state."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol
from uuid import UUID

import structlog

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.webhooks import (
    AttemptOutcome,
    DeliveryTransition,
    WebhookDelivery,
    WebhookSubscription,
)
from webhook_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)
from webhook_service.services.state_machine import (
    dead_letter_transition,
    decide_transition,
    validate_delivery_transition,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptExecutor(Protocol):
    async def attempt(
        self, delivery: WebhookDelivery, subscription: WebhookSubscription
    ) -> AttemptOutcome: ...


class RetryController:
    """Runs attempts and persists their outcome as a version-guarded transition.

    Only this class mutates delivery state after creation (the DLQ reset
    aside). Retries are not timers: a failed attempt stores ``next_retry_at``
    and the dispatcher's sweep claims the row once it is due.
    """

    def __init__(
        self,
        deliveries: WebhookDeliveryRepository,
        subscriptions: WebhookSubscriptionRepository,
        executor: AttemptExecutor,
        *,
        lease_seconds: float = 60.0,
        error_max_length: int = 500,
        clock: Clock = utcnow,
    ):
        self._deliveries = deliveries
        self._subscriptions = subscriptions
        self._executor = executor
        self._lease = timedelta(seconds=lease_seconds)
        self._error_max_length = error_max_length
        self._clock = clock

    async def run_attempt(self, delivery_id: UUID, attempt_number: int) -> WebhookDelivery | None:
        """Claim and execute attempt ``attempt_number + 1`` of *delivery_id*.

        Repeated calls for the same ``(delivery_id, attempt_number)`` are
        harmless: only one can win the claim, the rest return ``None``.
        """
        now = self._clock()
        claimed = await self._deliveries.claim(
            delivery_id,
            attempt_number=attempt_number,
            now=now,
            lease_until=now + self._lease,
        )
        if claimed is None:
            logger.debug(
                "webhook attempt not claimable",
                delivery_id=str(delivery_id),
                attempt_number=attempt_number,
            )
            return None
        return await self.process_claimed(claimed)

    async def process_claimed(self, delivery: WebhookDelivery) -> WebhookDelivery | None:
        """Execute one attempt for a delivery whose lease this worker holds."""
        log = logger.bind(
            delivery_id=str(delivery.id),
            subscription_id=str(delivery.subscription_id),
            attempt_number=delivery.attempt_number + 1,
        )
        try:
            subscription = await self._subscriptions.get(delivery.subscription_id)
        except NotFoundError as exc:
            log.error("webhook subscription missing, dead-lettering delivery")
            return await self._write(
                delivery, dead_letter_transition(delivery, str(exc), self._clock()), log
            )

        outcome = await self._executor.attempt(delivery, subscription)
        now = self._clock()
        transition = decide_transition(
            delivery, outcome, now, error_max_length=self._error_max_length
        )
        updated = await self._write(delivery, transition, log)
        if updated is None:
            return None

        if transition.status is DeliveryStatus.DELIVERED:
            log.info("webhook delivered", status_code=outcome.status_code, elapsed_ms=outcome.elapsed_ms)
        elif transition.status is DeliveryStatus.DEAD_LETTERED:
            log.warning(
                "webhook dead-lettered",
                status_code=outcome.status_code,
                error=transition.last_error,
                max_retries=delivery.max_retries,
            )
        else:
            log.warning(
                "webhook attempt failed, retry scheduled",
                status_code=outcome.status_code,
                error=transition.last_error,
                next_retry_at=transition.next_retry_at.isoformat() if transition.next_retry_at else None,
            )
        return updated

    async def _write(
        self, delivery: WebhookDelivery, transition: DeliveryTransition, log
    ) -> WebhookDelivery | None:
        validate_delivery_transition(delivery.status, transition.status)
        updated = await self._deliveries.apply_transition(
            delivery.id,
            expected_version=delivery.version,
            transition=transition,
            now=self._clock(),
        )
        if updated is None:
            log.warning(
                "webhook delivery changed concurrently, outcome discarded",
                expected_version=delivery.version,
                status=transition.status.value,
            )
        return updated
