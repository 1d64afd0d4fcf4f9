"""Subscription matching against incoming platform events."""
from __future__ import annotations

from typing import Iterable, List

from webhook_service.domain.webhooks import EventFilter, PlatformEvent, WebhookSubscription


def _allowed(allow_list: list[str] | None, value: str | None) -> bool:
    if allow_list is None:
        return True
    return value is not None and value in allow_list


def matches_filter(event: PlatformEvent, event_filter: EventFilter) -> bool:
    """True when every set allow-list contains the event's attribute."""
    return (
        _allowed(event_filter.event_types, event.event_type)
        and _allowed(event_filter.event_categories, event.event_category)
        and _allowed(event_filter.owner_ids, event.owner_id)
    )


def match_subscriptions(
    event: PlatformEvent, subscriptions: Iterable[WebhookSubscription]
) -> List[WebhookSubscription]:
    return [
        sub
        for sub in subscriptions
        if sub.is_active and matches_filter(event, sub.event_filter)
    ]
