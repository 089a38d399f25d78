"""Background maintenance tasks.

:data:`worker` runs every task each ``worker_interval_seconds``; its
``start``/``stop`` methods are registered as aiohttp lifecycle hooks.
"""
from __future__ import annotations

from webhook_service.settings import settings
from webhook_service.worker import BackgroundWorker, WorkerTask
from webhook_service.workers.webhook_purge import webhook_purge_completed
from webhook_service.workers.webhook_reclaim import webhook_reclaim_stuck

worker = BackgroundWorker(
    interval_seconds=settings.worker_interval_seconds,
    tasks=[
        WorkerTask(name="webhook_reclaim_stuck", fn=webhook_reclaim_stuck),
        WorkerTask(name="webhook_purge_completed", fn=webhook_purge_completed),
    ],
)

start_background_worker = worker.start
stop_background_worker = worker.stop

__all__ = [
    "worker",
    "start_background_worker",
    "stop_background_worker",
]
