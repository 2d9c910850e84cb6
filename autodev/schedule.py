"""
AutoDev Schedule

Fires a run once a day at a configured local time. Lives on the host's
event loop as a single background task; restarting it swaps the task.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from loguru import logger

from autodev.config_loader import ScheduleConfig


def seconds_until(daily_at: str, now: datetime) -> float:
    """Seconds from `now` until the next HH:MM occurrence (today or tomorrow)."""
    hour, minute = (int(part) for part in daily_at.split(":"))
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class DailyScheduler:

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        schedule: ScheduleConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.job = job
        self.schedule = schedule
        self.clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.schedule.enabled:
            logger.info("[SCHED] Schedule disabled, not starting.")
            return
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"[SCHED] Daily run scheduled at {self.schedule.daily_at}")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("[SCHED] Schedule stopped.")

    def restart(self, schedule: ScheduleConfig) -> None:
        self.stop()
        self.schedule = schedule
        self.start()

    async def _loop(self) -> None:
        while True:
            delay = seconds_until(self.schedule.daily_at, self.clock())
            logger.debug(f"[SCHED] Next run in {delay / 3600:.1f}h")
            await asyncio.sleep(delay)
            try:
                await self.job()
            except Exception as e:
                # Rejected or crashed scheduled runs wait for the next slot.
                logger.warning(f"[SCHED] Scheduled run skipped: {e}")
