"""Reusable periodic background worker for aiohttp services.

Usage::

    from service_common.worker import BackgroundWorker, WorkerTask

    async def archive_old_rows(now: datetime) -> str | None:
        archived = await repo.archive_older_than(now - timedelta(days=30))
        return f"archived={archived}" if archived else None

    worker = BackgroundWorker(
        name="maintenance",
        interval_seconds=3600.0,
        tasks=[WorkerTask(name="archive", fn=archive_old_rows)],
    )

    # In create_app():
    app.on_startup.append(worker.start)
    app.on_cleanup.append(worker.stop)

Several workers may run in the same application; each stores its asyncio
task under its own key.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

# Receives current UTC time, returns an optional summary (logged when non-empty).
TaskFn = Callable[[datetime], Awaitable[str | None]]


@dataclass
class WorkerTask:
    """A named periodic task executed by :class:`BackgroundWorker`."""

    name: str
    fn: TaskFn


@dataclass
class BackgroundWorker:
    """In-process async worker that runs a list of tasks in a loop.

    Each task is executed independently: if one fails the others still run.
    Lifecycle is managed through :meth:`start` / :meth:`stop` which are
    compatible with ``app.on_startup`` / ``app.on_cleanup``.
    """

    name: str = "background_worker"
    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)
    run_on_start: bool = False

    @property
    def app_key(self) -> str:
        return f"__background_worker_task__:{self.name}"

    async def start(self, app: web.Application) -> None:
        """Create the worker asyncio task. Register with ``app.on_startup``."""
        app[self.app_key] = asyncio.create_task(self._loop())

    async def stop(self, app: web.Application) -> None:
        """Cancel the worker task. Register with ``app.on_cleanup``."""
        task = app.get(self.app_key)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_once(self, now: datetime | None = None) -> None:
        """Execute every task once; failures are logged and isolated."""
        now = now or datetime.now(timezone.utc)
        for task in self.tasks:
            try:
                summary = await task.fn(now)
                if summary:
                    logger.info(
                        "background_task completed",
                        worker=self.name,
                        task=task.name,
                        summary=summary,
                    )
            except Exception:
                logger.exception(
                    "background_task failed",
                    worker=self.name,
                    task=task.name,
                )

    async def _loop(self) -> None:
        logger.info(
            "background_worker started",
            worker=self.name,
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        first = True
        while True:
            try:
                if not (first and self.run_on_start):
                    await asyncio.sleep(self.interval_seconds)
                first = False
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("background_worker stopped", worker=self.name)
                raise
            except Exception:
                logger.exception("background_worker sweep failed", worker=self.name)
