from __future__ import annotations

from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.webhooks import EventFilter
from webhook_service.services.ingress import TEST_EVENT_TYPE, EventIngress
from webhook_service.services.scheduler import DeliveryScheduler

from tests.utils import add_subscription, make_event


def _ingress(repositories, clock, handed_off=None):
    handoff = handed_off.append if handed_off is not None else (lambda _d: None)
    scheduler = DeliveryScheduler(repositories.deliveries, handoff, clock=clock)
    return EventIngress(repositories.subscriptions, scheduler, clock=clock)


async def test_only_matching_subscriptions_get_deliveries(repositories, clock):
    filtered = await add_subscription(
        repositories.subscriptions, event_filter=EventFilter(event_types=["X"])
    )
    unfiltered = await add_subscription(repositories.subscriptions)

    deliveries = await _ingress(repositories, clock).emit_event(make_event(event_type="Y"))

    assert [d.subscription_id for d in deliveries] == [unfiltered.id]
    rows = list(repositories.deliveries.rows.values())
    assert all(r.subscription_id != filtered.id for r in rows)
    assert len(rows) == 1


async def test_deactivated_subscription_gets_nothing(repositories, clock):
    sub = await add_subscription(repositories.subscriptions)
    await repositories.subscriptions.deactivate(sub.id, now=clock())

    deliveries = await _ingress(repositories, clock).emit_event(make_event())

    assert deliveries == []
    assert repositories.deliveries.rows == {}


async def test_new_delivery_is_pending_with_snapshot_and_handed_off(repositories, clock):
    sub = await add_subscription(
        repositories.subscriptions, max_retries=7, retry_delay_seconds=30
    )
    handed_off = []
    event = make_event(data={"invoice": "inv-1"}, correlation_id="corr-1")

    (delivery,) = await _ingress(repositories, clock, handed_off).emit_event(event)

    assert handed_off == [delivery]
    assert delivery.subscription_id == sub.id
    assert delivery.status is DeliveryStatus.PENDING
    assert delivery.attempt_number == 0
    assert delivery.next_retry_at == clock()
    assert delivery.max_retries == 7
    assert delivery.retry_delay_seconds == 30
    assert delivery.payload == event.to_json()
    assert delivery.payload["correlationId"] == "corr-1"


async def test_duplicate_event_creates_one_delivery(repositories, clock):
    await add_subscription(repositories.subscriptions)
    handed_off = []
    ingress = _ingress(repositories, clock, handed_off)
    event = make_event()

    first = await ingress.emit_event(event)
    second = await ingress.emit_event(event)

    assert len(first) == 1
    assert second == []
    assert len(repositories.deliveries.rows) == 1
    assert len(handed_off) == 1


async def test_storage_failure_is_contained(repositories, clock):
    async def broken():
        raise ConnectionError("database went away")

    repositories.subscriptions.list_active = broken

    assert await _ingress(repositories, clock).emit_event(make_event()) == []


async def test_test_event_targets_one_subscription(repositories, clock):
    target = await add_subscription(
        repositories.subscriptions, event_filter=EventFilter(event_types=["ONLY_THIS"])
    )
    await add_subscription(repositories.subscriptions)

    event, deliveries = await _ingress(repositories, clock).emit_test_event(target.id)

    assert event.event_type == TEST_EVENT_TYPE
    assert event.event_category == "SYSTEM"
    assert event.data["webhookId"] == str(target.id)
    assert [d.subscription_id for d in deliveries] == [target.id]
    assert len(repositories.deliveries.rows) == 1
