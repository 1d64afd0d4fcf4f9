"""Background webhook dispatcher (sweeps the delivery outbox and runs attempts)."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Set

import structlog
from aiohttp import ClientSession, ClientTimeout, web

from service_common.worker import BackgroundWorker, WorkerTask

from webhook_service.domain.webhooks import WebhookDelivery
from webhook_service.repositories import REPOSITORIES_KEY, WebhookRepositories
from webhook_service.repositories.webhooks import WebhookDeliveryRepository
from webhook_service.services.executor import DeliveryExecutor
from webhook_service.services.retry import RetryController
from webhook_service.settings import settings

logger = structlog.get_logger(__name__)

WEBHOOK_DISPATCHER_KEY = "webhook_dispatcher"
_WEBHOOK_SESSION_KEY = "webhook_http_session"
_WEBHOOK_SWEEPER_KEY = "webhook_sweeper"


class WebhookDispatcher:
    """Runs delivery attempts concurrently, bounded by ``max_concurrency``.

    Two entry points feed the controller: :meth:`submit` for an immediate
    first attempt (or a manual DLQ retry) and :meth:`sweep`, which leases
    every due PENDING row. Both go through a version-guarded claim, so the
    same attempt triggered twice runs once.
    """

    def __init__(
        self,
        controller: RetryController,
        deliveries: WebhookDeliveryRepository,
        *,
        max_concurrency: int = 10,
        batch_size: int = 100,
        lease_seconds: float = 60.0,
    ):
        self._controller = controller
        self._deliveries = deliveries
        self._max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._batch_size = batch_size
        self._lease = timedelta(seconds=lease_seconds)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, delivery: WebhookDelivery) -> None:
        """Start the next attempt of *delivery* without waiting for it."""
        self._spawn(self._run_submitted(delivery.id, delivery.attempt_number))

    async def sweep(self, now: datetime) -> str | None:
        """Lease due deliveries and start their attempts. Worker task signature."""
        capacity = min(self._batch_size, self._max_concurrency - len(self._tasks))
        if capacity <= 0:
            return None
        due = await self._deliveries.claim_due(
            limit=capacity, now=now, lease_until=now + self._lease
        )
        for delivery in due:
            self._spawn(self._run_claimed(delivery))
        return f"claimed={len(due)}" if due else None

    async def drain(self) -> None:
        """Wait for every in-flight attempt to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_submitted(self, delivery_id, attempt_number: int) -> None:
        async with self._semaphore:
            try:
                await self._controller.run_attempt(delivery_id, attempt_number)
            except Exception:
                logger.exception(
                    "webhook attempt crashed",
                    delivery_id=str(delivery_id),
                    attempt_number=attempt_number + 1,
                )

    async def _run_claimed(self, delivery: WebhookDelivery) -> None:
        async with self._semaphore:
            try:
                await self._controller.process_claimed(delivery)
            except Exception:
                # lease expiry hands the row to a later sweep
                logger.exception(
                    "webhook attempt crashed",
                    delivery_id=str(delivery.id),
                    subscription_id=str(delivery.subscription_id),
                    attempt_number=delivery.attempt_number + 1,
                )


async def start_webhook_dispatcher(app: web.Application) -> None:
    repositories: WebhookRepositories = app[REPOSITORIES_KEY]
    session = ClientSession(timeout=ClientTimeout(total=settings.webhook_request_timeout_seconds))
    executor = DeliveryExecutor(
        session,
        timeout_seconds=settings.webhook_request_timeout_seconds,
        error_max_length=settings.webhook_error_max_length,
        response_excerpt_length=settings.webhook_response_excerpt_length,
    )
    controller = RetryController(
        repositories.deliveries,
        repositories.subscriptions,
        executor,
        lease_seconds=settings.webhook_claim_lease_seconds,
        error_max_length=settings.webhook_error_max_length,
    )
    dispatcher = WebhookDispatcher(
        controller,
        repositories.deliveries,
        max_concurrency=settings.webhook_dispatch_max_concurrency,
        batch_size=settings.webhook_sweep_batch_size,
        lease_seconds=settings.webhook_claim_lease_seconds,
    )
    sweeper = BackgroundWorker(
        name="webhook_sweeper",
        interval_seconds=settings.webhook_sweep_interval_seconds,
        tasks=[WorkerTask(name="webhook_sweep_due", fn=dispatcher.sweep)],
        run_on_start=True,
    )
    app[_WEBHOOK_SESSION_KEY] = session
    app[WEBHOOK_DISPATCHER_KEY] = dispatcher
    app[_WEBHOOK_SWEEPER_KEY] = sweeper
    await sweeper.start(app)


async def stop_webhook_dispatcher(app: web.Application) -> None:
    sweeper = app.get(_WEBHOOK_SWEEPER_KEY)
    if sweeper is not None:
        await sweeper.stop(app)
    dispatcher = app.get(WEBHOOK_DISPATCHER_KEY)
    if dispatcher is not None:
        await dispatcher.close()
    session = app.get(_WEBHOOK_SESSION_KEY)
    if session is not None:
        await session.close()
