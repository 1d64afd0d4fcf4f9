from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from webhook_service.domain.webhooks import EventFilter, PlatformEvent, WebhookSubscription


def make_event(**overrides: Any) -> PlatformEvent:
    values: dict[str, Any] = {
        "event_id": f"evt-{uuid4()}",
        "event_type": "SUBSCRIPTION_CREATED",
        "event_category": "BILLING",
        "owner_id": "user-1",
        "timestamp": datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
        "data": {"plan": "pro", "amount": 4900},
    }
    values.update(overrides)
    return PlatformEvent(**values)


async def add_subscription(
    repository,
    *,
    url: str = "http://127.0.0.1:9/hook",
    event_filter: EventFilter | None = None,
    secret: str = "s3cr3t",
    max_retries: int = 3,
    retry_delay_seconds: int = 1,
    is_active: bool = True,
    now: datetime | None = None,
) -> WebhookSubscription:
    return await repository.create(
        url=url,
        event_filter=event_filter or EventFilter(),
        secret=secret,
        max_retries=max_retries,
        retry_delay_seconds=retry_delay_seconds,
        is_active=is_active,
        now=now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
    )
