"""Shared dependency providers for aiohttp handlers."""
from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from aiohttp import web

from webhook_service.dispatcher import WEBHOOK_DISPATCHER_KEY
from webhook_service.repositories import REPOSITORIES_KEY, WebhookRepositories
from webhook_service.services.dead_letters import DeadLetterService
from webhook_service.services.ingress import EventIngress
from webhook_service.services.scheduler import DeliveryScheduler, Handoff, no_handoff
from webhook_service.services.webhooks import WebhookService

TService = TypeVar("TService")

_WEBHOOK_SERVICE_KEY = "webhook_service"
_EVENT_INGRESS_KEY = "event_ingress"
_DEAD_LETTER_SERVICE_KEY = "dead_letter_service"


async def _get_or_create_service(
    request: web.Request,
    cache_key: str,
    builder: Callable[[web.Request], Awaitable[TService]],
) -> TService:
    service = request.get(cache_key)
    if service is None:
        service = await builder(request)
        request[cache_key] = service
    return service


def get_repositories(app: web.Application) -> WebhookRepositories:
    return app[REPOSITORIES_KEY]


def get_handoff(app: web.Application) -> Handoff:
    """Immediate hand-off to the dispatcher, or none when it is not running."""
    dispatcher = app.get(WEBHOOK_DISPATCHER_KEY)
    return dispatcher.submit if dispatcher is not None else no_handoff


def build_event_ingress(app: web.Application) -> EventIngress:
    """Producer entry point bound to the application's repositories."""
    repositories = get_repositories(app)
    scheduler = DeliveryScheduler(repositories.deliveries, get_handoff(app))
    return EventIngress(repositories.subscriptions, scheduler)


async def get_event_ingress(request: web.Request) -> EventIngress:
    async def builder(req: web.Request) -> EventIngress:
        return build_event_ingress(req.app)

    return await _get_or_create_service(request, _EVENT_INGRESS_KEY, builder)


async def get_webhook_service(request: web.Request) -> WebhookService:
    async def builder(req: web.Request) -> WebhookService:
        repositories = get_repositories(req.app)
        ingress = await get_event_ingress(req)
        return WebhookService(repositories.subscriptions, repositories.deliveries, ingress)

    return await _get_or_create_service(request, _WEBHOOK_SERVICE_KEY, builder)


async def get_dead_letter_service(request: web.Request) -> DeadLetterService:
    async def builder(req: web.Request) -> DeadLetterService:
        repositories = get_repositories(req.app)
        return DeadLetterService(repositories.deliveries, get_handoff(req.app))

    return await _get_or_create_service(request, _DEAD_LETTER_SERVICE_KEY, builder)
