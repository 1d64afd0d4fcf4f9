"""Worker: archive old webhook deliveries."""
from __future__ import annotations

from datetime import datetime, timedelta

from service_common.db.pool import get_pool

from webhook_service.repositories.webhooks import WebhookDeliveryRepository
from webhook_service.settings import settings


async def webhook_archive_old(now: datetime) -> str | None:
    """Archive settled deliveries older than ``webhook_archive_after_days``."""
    pool = await get_pool()
    cutoff = now - timedelta(days=settings.webhook_archive_after_days)
    archived = await WebhookDeliveryRepository(pool).archive_older_than(cutoff)
    return f"archived={archived}" if archived else None
