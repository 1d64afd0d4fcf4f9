from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from webhook_service.core.exceptions import InvalidStatusTransitionError
from webhook_service.domain.enums import AttemptResult, DeliveryStatus
from webhook_service.domain.webhooks import AttemptOutcome, WebhookDelivery
from webhook_service.services.state_machine import (
    backoff_seconds,
    dead_letter_transition,
    decide_transition,
    truncate,
    validate_delivery_transition,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

SUCCESS = AttemptOutcome(
    result=AttemptResult.SUCCESS,
    status_code=200,
    response={"status": 200, "statusText": "OK", "body": "ok", "elapsedMs": 3},
)
FAILURE = AttemptOutcome(
    result=AttemptResult.FAILURE,
    status_code=500,
    error="HTTP 500: upstream exploded",
)


def _delivery(**overrides) -> WebhookDelivery:
    values = {
        "id": uuid4(),
        "subscription_id": uuid4(),
        "event_id": "evt-1",
        "event_type": "X",
        "status": DeliveryStatus.PENDING,
        "payload": {"eventId": "evt-1"},
        "attempt_number": 0,
        "next_retry_at": NOW,
        "max_retries": 3,
        "retry_delay_seconds": 10,
        "created_at": NOW,
    }
    values.update(overrides)
    return WebhookDelivery(**values)


def test_backoff_doubles_per_attempt():
    delays = [backoff_seconds(5, k) for k in range(6)]
    assert delays == [5, 10, 20, 40, 80, 160]
    assert all(a < b for a, b in zip(delays, delays[1:]))


def test_success_marks_delivered():
    transition = decide_transition(_delivery(attempt_number=1), SUCCESS, NOW)
    assert transition.status is DeliveryStatus.DELIVERED
    assert transition.attempt_number == 2
    assert transition.delivered_at == NOW
    assert transition.next_retry_at is None
    assert transition.response == SUCCESS.response


def test_failure_with_budget_left_schedules_retry():
    transition = decide_transition(_delivery(attempt_number=0), FAILURE, NOW)
    assert transition.status is DeliveryStatus.PENDING
    assert transition.attempt_number == 1
    assert transition.next_retry_at == NOW + timedelta(seconds=20)
    assert transition.last_error == "HTTP 500: upstream exploded"

    second = decide_transition(_delivery(attempt_number=1), FAILURE, NOW)
    assert second.next_retry_at == NOW + timedelta(seconds=40)


def test_failure_on_last_attempt_dead_letters():
    transition = decide_transition(_delivery(attempt_number=2, max_retries=3), FAILURE, NOW)
    assert transition.status is DeliveryStatus.DEAD_LETTERED
    assert transition.attempt_number == 3
    assert transition.dead_lettered_at == NOW
    assert transition.next_retry_at is None


def test_single_attempt_budget_dead_letters_immediately():
    transition = decide_transition(_delivery(max_retries=1), FAILURE, NOW)
    assert transition.status is DeliveryStatus.DEAD_LETTERED
    assert transition.attempt_number == 1


@pytest.mark.parametrize(
    "status", [DeliveryStatus.DELIVERED, DeliveryStatus.DEAD_LETTERED, DeliveryStatus.FAILED]
)
def test_outcome_for_settled_delivery_is_rejected(status):
    with pytest.raises(InvalidStatusTransitionError):
        decide_transition(_delivery(status=status), SUCCESS, NOW)


def test_error_message_is_truncated():
    outcome = AttemptOutcome(result=AttemptResult.FAILURE, error="x" * 2000)
    transition = decide_transition(_delivery(), outcome, NOW, error_max_length=100)
    assert len(transition.last_error) == 100
    assert transition.last_error.endswith("...")


def test_truncate_keeps_short_messages():
    assert truncate("short", 10) == "short"
    assert truncate(None, 10) is None


def test_dead_letter_transition_does_not_count_an_attempt():
    delivery = _delivery(attempt_number=1)
    transition = dead_letter_transition(delivery, "subscription gone", NOW)
    assert transition.status is DeliveryStatus.DEAD_LETTERED
    assert transition.attempt_number == 1
    assert transition.last_error == "subscription gone"


def test_validate_transition_table():
    validate_delivery_transition(DeliveryStatus.PENDING, DeliveryStatus.DELIVERED)
    validate_delivery_transition(DeliveryStatus.PENDING, DeliveryStatus.PENDING)
    validate_delivery_transition(DeliveryStatus.DEAD_LETTERED, DeliveryStatus.PENDING)
    with pytest.raises(InvalidStatusTransitionError):
        validate_delivery_transition(DeliveryStatus.DELIVERED, DeliveryStatus.PENDING)
    with pytest.raises(InvalidStatusTransitionError):
        validate_delivery_transition(DeliveryStatus.PENDING, DeliveryStatus.FAILED)
