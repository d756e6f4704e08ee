"""Collapse overlapping update triggers into one job at a time.

Even if there are many pushes in a row, only one full update runs at any
instant. Triggers that arrive while it runs are folded into a single rerun.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..logs import LogBuffer, RollingLogs

logger = logging.getLogger(__name__)

UpdateJob = Callable[[LogBuffer, str], Awaitable[None]]


@dataclass
class JobState:
    """Run-loop flags. ``pending_rerun`` is only ever set while ``running``."""

    running: bool = False
    pending_rerun: bool = False


class JobCoalescer:
    """Wraps an update job so overlapping triggers never run it concurrently.

    The check-and-set of ``state.running`` in :meth:`trigger` happens without
    an intervening await, so on a single event loop no lock is needed.

    Example:
        >>> coalescer = JobCoalescer(run_full_update)
        >>> task = coalescer.trigger(log, current_timestamp())
        >>> if task is not None:
        ...     await task
    """

    def __init__(self, job: UpdateJob, state: Optional[JobState] = None):
        self._job = job
        self.state = state or JobState()

    def trigger(self, log: LogBuffer, timestamp: str) -> Optional[asyncio.Task]:
        """Start a run-loop, or record a rerun if one is in flight.

        Returns:
            The task for the whole run-loop, or None when the trigger was
            coalesced into the run already in flight
        """
        if self.state.running:
            self.state.pending_rerun = True
            log.info("Not starting update, because already performing one.")
            return None

        self.state.running = True
        self.state.pending_rerun = False
        log.info("Starting update")
        return asyncio.ensure_future(self._run_loop(log, timestamp))

    async def _run_loop(self, log: LogBuffer, timestamp: str) -> None:
        try:
            while True:
                self.state.pending_rerun = False
                await self._job(log, timestamp)
                if not self.state.pending_rerun:
                    break
                logger.info("Update requested during run, running again")
        finally:
            self.state.running = False
            self.state.pending_rerun = False

    @property
    def running(self) -> bool:
        return self.state.running


async def settle(
    log: LogBuffer,
    job: Optional[Awaitable[None]],
    sink: Optional[RollingLogs],
) -> Optional[BaseException]:
    """Wait for a triggered run, then flush ``log`` to ``sink`` exactly once.

    Returns:
        The job or flush error, or None if both succeeded
    """
    error: Optional[BaseException] = None
    try:
        if job is not None:
            await job
    except Exception as exc:
        error = exc
        log.error(f"Full update failed: {exc!r}")

    try:
        await log.flush(sink)
    except OSError as exc:
        logger.error(f"Failed to write rolling log: {exc}", exc_info=True)
        error = error or exc
    return error


__all__ = ["JobCoalescer", "JobState", "UpdateJob", "settle"]
