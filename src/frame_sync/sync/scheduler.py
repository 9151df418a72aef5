"""Periodic sync driver with run exclusion."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("frame_sync.sync.scheduler")

SyncWork = Callable[[], Awaitable[Any]]

JOB_ID = "photo-sync"


class TickOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class SyncScheduler:
    """
    Run a sync work unit now and then every ``interval_seconds``.

    At most one run is active per scheduler; a tick that finds a run in
    progress is dropped. stop() only prevents future ticks, a run already
    under way finishes in the background.
    """

    def __init__(self, work: SyncWork, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._work = work
        self._interval = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._in_progress = False
        self._background: set[asyncio.Task] = set()
        self.last_error: Optional[BaseException] = None
        self.last_result: Any = None

    async def start(self) -> None:
        """Run once, then arm the repeating timer. Errors from the first run propagate."""
        if self._scheduler is not None:
            logger.info({"event": "scheduler.start.ignored", "reason": "already running"})
            return

        await self._run(propagate=True)
        self._arm()
        logger.info(
            {
                "event": "scheduler.started",
                "message": f"Sync scheduler started with {self._interval}s interval",
                "interval_seconds": self._interval,
            }
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info({"event": "scheduler.stopped", "message": "Sync scheduler stopped"})

    async def update_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("interval must be positive")
        self._interval = seconds
        logger.info({"event": "scheduler.interval.updated", "interval_seconds": seconds})
        if self.is_running():
            # The timer is re-armed even when the extra run fails.
            self.stop()
            await self.tick()
            self._arm()
            logger.info(
                {
                    "event": "scheduler.restarted",
                    "message": f"Sync scheduler restarted with {self._interval}s interval",
                    "interval_seconds": self._interval,
                }
            )

    async def tick(self) -> TickOutcome:
        """One timer tick; never raises."""
        return await self._run(propagate=False)

    async def drain(self) -> None:
        """Wait for runs started by the timer to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def is_running(self) -> bool:
        return self._scheduler is not None

    def is_sync_in_progress(self) -> bool:
        return self._in_progress

    def get_interval_seconds(self) -> float:
        return self._interval

    # Internals -------------------------------------------------------------

    def _arm(self) -> None:
        scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        scheduler.add_job(
            self._on_timer,
            IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        scheduler.start()
        self._scheduler = scheduler

    async def _on_timer(self) -> None:
        # Runs are detached from the job so shutting the scheduler down
        # cannot cancel them.
        if self._in_progress:
            self._log_skip()
            return
        task = asyncio.get_running_loop().create_task(self.tick())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run(self, *, propagate: bool) -> TickOutcome:
        if self._in_progress:
            self._log_skip()
            return TickOutcome.SKIPPED

        self._in_progress = True
        try:
            self.last_result = await self._work()
        except Exception as exc:
            self.last_error = exc
            if propagate:
                logger.error({"event": "scheduler.run.failed", "error": str(exc)})
                raise
            logger.exception({"event": "scheduler.run.failed", "error": str(exc)})
            return TickOutcome.FAILED
        finally:
            self._in_progress = False

        self.last_error = None
        return TickOutcome.COMPLETED

    @staticmethod
    def _log_skip() -> None:
        logger.info(
            {
                "event": "scheduler.tick.skipped",
                "message": "Sync already in progress, skipping this interval.",
            }
        )
