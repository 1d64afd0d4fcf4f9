"""Unit tests for webhook_service.workers task functions.

Uses mocked repositories to avoid database dependency.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from webhook_service.settings import settings
from webhook_service.workers import worker


@pytest.fixture
def mock_pool_archive():
    with patch(
        "webhook_service.workers.webhook_archive.get_pool",
        new_callable=AsyncMock,
        return_value=AsyncMock(),
    ):
        yield


@pytest.mark.asyncio
async def test_webhook_archive_returns_summary(mock_pool_archive):
    now = datetime.now(timezone.utc)
    with patch(
        "webhook_service.workers.webhook_archive.WebhookDeliveryRepository"
    ) as MockRepo:
        instance = MockRepo.return_value
        instance.archive_older_than = AsyncMock(return_value=4)

        from webhook_service.workers.webhook_archive import webhook_archive_old
        result = await webhook_archive_old(now)

    assert result == "archived=4"
    cutoff = instance.archive_older_than.call_args[0][0]
    assert cutoff == now - timedelta(days=settings.webhook_archive_after_days)


@pytest.mark.asyncio
async def test_webhook_archive_returns_none_when_nothing_archived(mock_pool_archive):
    now = datetime.now(timezone.utc)
    with patch(
        "webhook_service.workers.webhook_archive.WebhookDeliveryRepository"
    ) as MockRepo:
        instance = MockRepo.return_value
        instance.archive_older_than = AsyncMock(return_value=0)

        from webhook_service.workers.webhook_archive import webhook_archive_old
        result = await webhook_archive_old(now)

    assert result is None


def test_maintenance_worker_registers_archive_task():
    assert [t.name for t in worker.tasks] == ["webhook_archive_old"]
    assert worker.interval_seconds == settings.worker_interval_seconds

