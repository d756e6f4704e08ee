"""Fixed-interval safety-net trigger for the full update."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..logs import LogBuffer, RollingLogs, current_timestamp
from .coalescer import JobCoalescer, settle

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 300
JOB_ID = "periodic-full-update"

ErrorCallback = Callable[[BaseException], Awaitable[None]]


class PeriodicTrigger:
    """Triggers the coalesced update every ``interval_seconds``.

    Runs independently of webhook traffic so a missed delivery is picked up by
    the next tick. Each tick gets a fresh log buffer and timestamp; a failed
    run is reported to ``on_error``.
    """

    def __init__(
        self,
        coalescer: JobCoalescer,
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        rolling_logs: Optional[RollingLogs] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        if interval_seconds < 1:
            raise ValueError("interval_seconds must be at least 1")
        self.coalescer = coalescer
        self.interval_seconds = interval_seconds
        self.rolling_logs = rolling_logs
        self.on_error = on_error
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(
            f"Periodic full update every {self.interval_seconds}s",
            extra={"interval_seconds": self.interval_seconds},
        )

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Periodic full update stopped")
        self._scheduler = None

    async def tick(self) -> None:
        """Trigger one update without waiting for it to finish."""
        log = LogBuffer(name="periodic")
        job = self.coalescer.trigger(log, current_timestamp())
        task = asyncio.ensure_future(self._finish(log, job))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _finish(self, log: LogBuffer, job: Optional[Awaitable[None]]) -> None:
        error = await settle(log, job, self.rolling_logs)
        if error is not None and self.on_error is not None:
            await self.on_error(error)

    async def wait_idle(self) -> None:
        """Wait until every triggered run has finished and been flushed."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ["DEFAULT_INTERVAL_SECONDS", "PeriodicTrigger"]
