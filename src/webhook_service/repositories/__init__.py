"""Repository package exports."""
from __future__ import annotations

from dataclasses import dataclass

from asyncpg import Pool  # type: ignore[import-untyped]

from webhook_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)

REPOSITORIES_KEY = "webhook_repositories"


@dataclass
class WebhookRepositories:
    """Repositories shared by request handlers and the dispatcher."""

    subscriptions: WebhookSubscriptionRepository
    deliveries: WebhookDeliveryRepository

    @classmethod
    def from_pool(cls, pool: Pool) -> "WebhookRepositories":
        return cls(
            subscriptions=WebhookSubscriptionRepository(pool),
            deliveries=WebhookDeliveryRepository(pool),
        )


__all__ = [
    "REPOSITORIES_KEY",
    "WebhookRepositories",
    "WebhookSubscriptionRepository",
    "WebhookDeliveryRepository",
]
