"""Repeating background jobs (auto-sync, tasks backup) on APScheduler."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class PeriodicTask:
    """One interval job on a shared scheduler, identified by *name*.

    Starting always removes the previously armed job first, so at most one
    instance per PeriodicTask is ever scheduled.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[Any]],
        scheduler: AsyncIOScheduler,
    ):
        self.name = name
        self._callback = callback
        self._scheduler = scheduler

    @property
    def armed(self) -> bool:
        return self._scheduler.get_job(self.name) is not None

    def start(self, interval_seconds: float) -> None:
        self.stop()
        if interval_seconds <= 0:
            return
        self._scheduler.add_job(
            self._run,
            IntervalTrigger(seconds=interval_seconds),
            id=self.name,
            name=self.name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("Armed %s every %.0fs", self.name, interval_seconds)

    def stop(self) -> None:
        if self.armed:
            self._scheduler.remove_job(self.name)

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("%s run failed", self.name)
