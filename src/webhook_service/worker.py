"""Periodic in-process background worker.

Each :class:`WorkerTask` receives the current UTC time and may return a
short summary that gets logged. A failing task is logged and does not stop
the others or the loop.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

TaskFn = Callable[[datetime], Awaitable[str | None]]

_WORKER_TASK_KEY = "background_worker_task"


@dataclass
class WorkerTask:
    name: str
    fn: TaskFn


@dataclass
class BackgroundWorker:
    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)

    async def start(self, app: web.Application) -> None:
        """``app.on_startup`` hook."""
        app[_WORKER_TASK_KEY] = asyncio.create_task(self._loop())

    async def stop(self, app: web.Application) -> None:
        """``app.on_cleanup`` hook."""
        task = app.get(_WORKER_TASK_KEY)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_once(self, now: datetime) -> None:
        for task in self.tasks:
            try:
                summary = await task.fn(now)
            except Exception:
                logger.exception("background_task failed", task=task.name)
                continue
            if summary:
                logger.info("background_task completed", task=task.name, summary=summary)

    async def _loop(self) -> None:
        logger.info(
            "background_worker started",
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once(datetime.now(timezone.utc))
        except asyncio.CancelledError:
            logger.info("background_worker stopped")
            raise
