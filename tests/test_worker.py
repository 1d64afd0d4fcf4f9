"""Unit tests for service_common.worker.BackgroundWorker.

These are pure async tests, no database or aiohttp test server required.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from aiohttp import web

from service_common.worker import BackgroundWorker, WorkerTask


@pytest.mark.asyncio
async def test_worker_runs_tasks():
    """Worker should call each task function with a datetime argument."""
    called_with: list[datetime] = []

    async def task_fn(now: datetime) -> str | None:
        called_with.append(now)
        return "ok"

    worker = BackgroundWorker(
        interval_seconds=0.05,
        tasks=[WorkerTask(name="test_task", fn=task_fn)],
    )

    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.2)
    await worker.stop(app)

    assert len(called_with) >= 2
    for dt in called_with:
        assert dt.tzinfo is not None


@pytest.mark.asyncio
async def test_worker_task_failure_does_not_stop_others():
    good_count = 0

    async def bad_task(now: datetime) -> str | None:
        raise RuntimeError("boom")

    async def good_task(now: datetime) -> str | None:
        nonlocal good_count
        good_count += 1
        return None

    worker = BackgroundWorker(
        interval_seconds=0.05,
        tasks=[
            WorkerTask(name="bad", fn=bad_task),
            WorkerTask(name="good", fn=good_task),
        ],
    )

    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.2)
    await worker.stop(app)

    assert good_count >= 2, "good_task should keep running despite bad_task failures"


@pytest.mark.asyncio
async def test_run_on_start_runs_immediately():
    fn = AsyncMock(return_value=None)
    worker = BackgroundWorker(
        interval_seconds=60.0,
        tasks=[WorkerTask(name="eager", fn=fn)],
        run_on_start=True,
    )

    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.05)
    await worker.stop(app)

    assert fn.await_count == 1


@pytest.mark.asyncio
async def test_workers_use_separate_app_keys():
    first = BackgroundWorker(name="a", interval_seconds=1.0)
    second = BackgroundWorker(name="b", interval_seconds=1.0)

    app = web.Application()
    await first.start(app)
    await second.start(app)
    assert first.app_key != second.app_key
    assert first.app_key in app and second.app_key in app

    await first.stop(app)
    await second.stop(app)


@pytest.mark.asyncio
async def test_worker_stop_without_start():
    """Calling stop without start should be a no-op."""
    worker = BackgroundWorker(interval_seconds=1.0, tasks=[])
    app = web.Application()
    await worker.stop(app)
