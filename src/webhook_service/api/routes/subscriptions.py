"""Webhook subscription endpoints."""
from __future__ import annotations

import json

from aiohttp import web

from webhook_service.api.utils import (
    paginated_response,
    pagination_params,
    parse_bool,
    parse_uuid,
    read_json,
)
from webhook_service.core.exceptions import NotFoundError, SubscriptionValidationError
from webhook_service.services.dependencies import get_webhook_service

routes = web.RouteTableDef()

PREFIX = "/api/v1/webhooks"


def _unprocessable(exc: SubscriptionValidationError) -> web.HTTPUnprocessableEntity:
    return web.HTTPUnprocessableEntity(
        text=json.dumps({"error": str(exc), "details": exc.errors}, default=str),
        content_type="application/json",
    )


@routes.post(f"{PREFIX}/subscriptions")
async def create_subscription(request: web.Request):
    body = await read_json(request)
    service = await get_webhook_service(request)
    try:
        subscription, secret = await service.create_subscription(body)
    except SubscriptionValidationError as exc:
        raise _unprocessable(exc) from exc
    # the only response that ever carries the secret
    return web.json_response(
        {"subscription": subscription.to_json(), "secret": secret}, status=201
    )


@routes.get(f"{PREFIX}/subscriptions")
async def list_subscriptions(request: web.Request):
    limit, offset = pagination_params(request)
    is_active = parse_bool(request.rel_url.query.get("isActive"), "isActive")
    service = await get_webhook_service(request)
    items, total = await service.list_subscriptions(
        limit=limit, offset=offset, is_active=is_active
    )
    payload = paginated_response(
        [item.to_json() for item in items],
        limit=limit,
        offset=offset,
        key="subscriptions",
        total=total,
    )
    return web.json_response(payload)


@routes.get(f"{PREFIX}/subscriptions/{{subscription_id}}")
async def get_subscription(request: web.Request):
    subscription_id = parse_uuid(request.match_info["subscription_id"], "subscription_id")
    service = await get_webhook_service(request)
    try:
        detail = await service.get_subscription_detail(subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(
        {
            "subscription": detail.subscription.to_json(),
            "recentDeliveries": [d.to_json() for d in detail.recent_deliveries],
            "statistics": detail.statistics.to_json(),
        }
    )


@routes.put(f"{PREFIX}/subscriptions/{{subscription_id}}")
async def update_subscription(request: web.Request):
    subscription_id = parse_uuid(request.match_info["subscription_id"], "subscription_id")
    body = await read_json(request)
    service = await get_webhook_service(request)
    try:
        subscription = await service.update_subscription(subscription_id, body)
    except SubscriptionValidationError as exc:
        raise _unprocessable(exc) from exc
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response({"subscription": subscription.to_json()})


@routes.delete(f"{PREFIX}/subscriptions/{{subscription_id}}")
async def deactivate_subscription(request: web.Request):
    subscription_id = parse_uuid(request.match_info["subscription_id"], "subscription_id")
    service = await get_webhook_service(request)
    try:
        subscription = await service.deactivate_subscription(subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response({"subscription": subscription.to_json()})


@routes.post(f"{PREFIX}/subscriptions/{{subscription_id}}/test")
async def send_test_event(request: web.Request):
    subscription_id = parse_uuid(request.match_info["subscription_id"], "subscription_id")
    service = await get_webhook_service(request)
    try:
        event, deliveries = await service.send_test_event(subscription_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(
        {"eventId": event.event_id, "deliveries": [d.to_json() for d in deliveries]},
        status=202,
    )
