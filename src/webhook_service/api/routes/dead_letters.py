"""Dead letter queue endpoints."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import paginated_response, pagination_params, parse_uuid
from webhook_service.core.exceptions import InvalidStatusTransitionError, NotFoundError
from webhook_service.services.dependencies import get_dead_letter_service

routes = web.RouteTableDef()


@routes.get("/api/v1/webhooks/dlq/list")
async def list_dead_letters(request: web.Request):
    limit, offset = pagination_params(request)
    service = await get_dead_letter_service(request)
    items, total = await service.list_dead_lettered(limit=limit, offset=offset)
    payload = paginated_response(
        [item.to_json() for item in items],
        limit=limit,
        offset=offset,
        key="deliveries",
        total=total,
    )
    return web.json_response(payload)


@routes.post("/api/v1/webhooks/dlq/retry/{delivery_id}")
async def retry_dead_letter(request: web.Request):
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    service = await get_dead_letter_service(request)
    try:
        delivery = await service.retry_dead_lettered_delivery(delivery_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise web.HTTPConflict(text=str(exc)) from exc
    return web.json_response({"delivery": delivery.to_json()}, status=202)
