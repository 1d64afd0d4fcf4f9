"""Background maintenance workers for webhook-service.

Each worker is a standalone module exporting a single async task function
compatible with :class:`service_common.worker.WorkerTask`. The delivery
sweeper is separate and lives in :mod:`webhook_service.dispatcher`.
"""
from __future__ import annotations

from service_common.worker import BackgroundWorker, WorkerTask

from webhook_service.settings import settings
from webhook_service.workers.webhook_archive import webhook_archive_old

worker = BackgroundWorker(
    name="maintenance",
    interval_seconds=settings.worker_interval_seconds,
    tasks=[
        WorkerTask(name="webhook_archive_old", fn=webhook_archive_old),
    ],
)

start_background_worker = worker.start
stop_background_worker = worker.stop

__all__ = [
    "worker",
    "start_background_worker",
    "stop_background_worker",
]
