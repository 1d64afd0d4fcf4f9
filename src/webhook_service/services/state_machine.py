"""Delivery status transitions and the retry/backoff decision."""
from __future__ import annotations

from datetime import datetime, timedelta

from webhook_service.core.exceptions import InvalidStatusTransitionError
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.webhooks import AttemptOutcome, DeliveryTransition, WebhookDelivery

DELIVERY_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {DeliveryStatus.DELIVERED, DeliveryStatus.DEAD_LETTERED},
    DeliveryStatus.DELIVERED: set(),
    # manual retry from the dead letter queue
    DeliveryStatus.DEAD_LETTERED: {DeliveryStatus.PENDING},
    DeliveryStatus.FAILED: set(),
}


def validate_delivery_transition(current: DeliveryStatus, new: DeliveryStatus) -> None:
    if current == new == DeliveryStatus.PENDING:
        return
    if new not in DELIVERY_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransitionError(
            f"Invalid delivery status transition: {current.value} → {new.value}"
        )


def backoff_seconds(base_delay_seconds: int, attempt_number: int) -> int:
    """Delay before the attempt following *attempt_number* failed attempts."""
    return base_delay_seconds * 2**attempt_number


def truncate(message: str | None, limit: int) -> str | None:
    if message is None or len(message) <= limit:
        return message
    return message[: max(limit - 3, 0)] + "..."


def decide_transition(
    delivery: WebhookDelivery,
    outcome: AttemptOutcome,
    now: datetime,
    *,
    error_max_length: int = 500,
) -> DeliveryTransition:
    """Compute the row update for *outcome* of the attempt on *delivery*.

    The attempt counter always advances by one. A failure either keeps the
    delivery PENDING with the next backoff or dead-letters it once the
    snapshotted ``max_retries`` budget is spent.
    """
    if delivery.status is not DeliveryStatus.PENDING:
        raise InvalidStatusTransitionError(
            f"Delivery {delivery.id} is {delivery.status.value}; only PENDING deliveries accept attempt outcomes"
        )

    attempt_number = delivery.attempt_number + 1

    if outcome.succeeded:
        return DeliveryTransition(
            status=DeliveryStatus.DELIVERED,
            attempt_number=attempt_number,
            next_retry_at=None,
            response=outcome.response,
            delivered_at=now,
        )

    error = truncate(outcome.error or "delivery failed", error_max_length)
    if attempt_number < delivery.max_retries:
        delay = backoff_seconds(delivery.retry_delay_seconds, attempt_number)
        return DeliveryTransition(
            status=DeliveryStatus.PENDING,
            attempt_number=attempt_number,
            next_retry_at=now + timedelta(seconds=delay),
            last_error=error,
            response=outcome.response,
        )

    return DeliveryTransition(
        status=DeliveryStatus.DEAD_LETTERED,
        attempt_number=attempt_number,
        next_retry_at=None,
        last_error=error,
        response=outcome.response,
        dead_lettered_at=now,
    )


def dead_letter_transition(
    delivery: WebhookDelivery, reason: str, now: datetime
) -> DeliveryTransition:
    """Dead-letter without an attempt (e.g. the subscription row is gone)."""
    return DeliveryTransition(
        status=DeliveryStatus.DEAD_LETTERED,
        attempt_number=delivery.attempt_number,
        next_retry_at=None,
        last_error=reason,
        dead_lettered_at=now,
    )
