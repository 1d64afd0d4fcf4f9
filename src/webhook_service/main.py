"""aiohttp application entrypoint."""
from __future__ import annotations

from pathlib import Path

from aiohttp import web

from service_common.aiohttp_app import add_cors_to_routes, add_healthcheck, create_base_app
from service_common.db.migrations import create_migration_runner
from service_common.db.pool import create_pool_hooks, get_pool
from service_common.logging_config import configure_logging

from webhook_service.api.router import setup_routes
from webhook_service.dispatcher import start_webhook_dispatcher, stop_webhook_dispatcher
from webhook_service.otel import setup_otel, shutdown_otel
from webhook_service.repositories import REPOSITORIES_KEY, WebhookRepositories
from webhook_service.settings import settings
from webhook_service.workers import start_background_worker, stop_background_worker

configure_logging(settings.log_level)

MIGRATION_PATHS = [
    Path(__file__).resolve().parent.parent.parent / "migrations",  # repository checkout
    Path("/app/migrations"),  # container
]


async def init_repositories(app: web.Application) -> None:
    pool = await get_pool()
    app[REPOSITORIES_KEY] = WebhookRepositories.from_pool(pool)


def create_app(
    *,
    repositories: WebhookRepositories | None = None,
    start_background: bool = True,
) -> web.Application:
    """Build the application.

    Passing *repositories* skips the database pool and migrations, which is
    how tests run the API against in-memory storage.
    """
    app, cors = create_base_app(settings)
    add_healthcheck(app, settings)
    setup_routes(app)
    setup_otel(app)

    if repositories is None:
        init_pool_hook, close_pool_hook = create_pool_hooks(settings)
        app.on_startup.append(init_pool_hook)
        app.on_startup.append(create_migration_runner(settings, MIGRATION_PATHS))
        app.on_startup.append(init_repositories)
    else:
        close_pool_hook = None
        app[REPOSITORIES_KEY] = repositories

    if start_background:
        app.on_startup.append(start_webhook_dispatcher)
        app.on_startup.append(start_background_worker)
        app.on_cleanup.append(stop_background_worker)
        app.on_cleanup.append(stop_webhook_dispatcher)
    if close_pool_hook is not None:
        app.on_cleanup.append(close_pool_hook)
    app.on_cleanup.append(shutdown_otel)

    add_cors_to_routes(app, cors)
    return app


def main() -> None:
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
