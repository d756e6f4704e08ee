"""Wire the full update job to the webhook listener and periodic trigger."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web

from ..configuration import Settings
from ..logs import LogBuffer, RollingLogs
from ..net import Fetcher
from .coalescer import JobCoalescer
from .server import WebhookServer
from .trigger import PeriodicTrigger

logger = logging.getLogger(__name__)

FullUpdateJob = Callable[[Settings, str, Fetcher, LogBuffer], Awaitable[None]]


def webhook_server(
    settings: Settings,
    job: FullUpdateJob,
    *,
    fetcher: Optional[Fetcher] = None,
    rolling_logs: Optional[RollingLogs] = None,
) -> WebhookServer:
    """Build a listener whose pushes and periodic ticks share one coalescer.

    Args:
        settings: Listener configuration
        job: Full update, called as ``job(settings, timestamp, fetcher, log)``
        fetcher: Shared HTTP client; created and closed with the server if omitted
        rolling_logs: Rolling log sink; opened from ``settings`` if omitted

    Returns:
        The server, not yet started
    """
    owns_fetcher = fetcher is None
    shared_fetcher = fetcher or Fetcher()

    async def full_one(log: LogBuffer, timestamp: str) -> None:
        log.info("")
        log.info("")
        log.info(f"# {timestamp}")
        log.info("")
        log.info("Starting full...")
        await job(settings, timestamp, shared_fetcher, log)

    coalescer = JobCoalescer(full_one)
    server = WebhookServer(settings=settings, coalescer=coalescer, rolling_logs=rolling_logs)
    server.periodic_trigger = PeriodicTrigger(
        coalescer,
        interval_seconds=settings.update_interval_seconds,
        rolling_logs=server.rolling_logs,
        on_error=server.shutdown,
    )

    if owns_fetcher:
        async def _close_fetcher(app: web.Application) -> None:
            await shared_fetcher.close()

        server.app.on_cleanup.append(_close_fetcher)

    return server


__all__ = ["FullUpdateJob", "webhook_server"]
