"""API router composition for aiohttp."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.routes import dead_letters, subscriptions

ROUTE_MODULES = [
    subscriptions,
    dead_letters,
]


def setup_routes(app: web.Application) -> None:
    """Attach webhook routes to the aiohttp application."""
    for module in ROUTE_MODULES:
        app.add_routes(module.routes)
