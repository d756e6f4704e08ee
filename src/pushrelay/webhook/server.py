"""GitHub push webhook listener using aiohttp.

This module implements the HTTP server that receives push notifications,
verifies their signatures and triggers the coalesced full update. The server
stops accepting connections after the first failed update.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Optional, Set

from aiohttp import web
from aiohttp.http_exceptions import HttpProcessingError

from ..errors import BadCharacterError, UpdateJobError
from ..logs import LogBuffer, RollingLogs, current_timestamp
from ..net.fetcher import parse_json
from .coalescer import JobCoalescer, settle
from .security import check_signature

if TYPE_CHECKING:
    from ..configuration import Settings
    from .trigger import PeriodicTrigger

logger = logging.getLogger(__name__)

ACKNOWLEDGEMENT = "Thanks for the update! Running full."
REPLACEMENT_CHARACTER = "\ufffd"

# Raised by request.read() when the client hangs up or sends a short body.
BODY_READ_ERRORS = (ConnectionError, asyncio.IncompleteReadError, HttpProcessingError)


class ListenerState(str, Enum):
    ACCEPTING = "accepting"
    SHUTTING_DOWN = "shutting_down"


async def read_body_text(request: web.Request, description: str) -> str:
    """Read the whole request body as UTF-8 text.

    Raises:
        BadCharacterError: If the body does not decode cleanly
    """
    raw = await request.read()
    text = raw.decode("utf-8", errors="replace")
    if REPLACEMENT_CHARACTER in text:
        raise BadCharacterError(f"Bad character decode in {description}")
    return text


# ---------------------------------------------------------------------------
# Webhook Server
# ---------------------------------------------------------------------------


class WebhookServer:
    """Receives GitHub push webhooks and runs the full update.

    This class implements an aiohttp-based HTTP server that:
    - Answers only POST requests on ``/``; anything else gets no response
    - Verifies the HMAC-SHA1 ``X-Hub-Signature`` header
    - Triggers the coalesced update for pushes to the source branch
    - Flushes each request's log lines to the rolling log exactly once
    - Stops listening after the first failed update

    Attributes:
        settings: Listener configuration
        coalescer: Shared one-at-a-time update runner
        rolling_logs: Rolling log receiving each request's log lines
        state: ``ACCEPTING`` until the first update failure
        failure: The error that caused the shutdown, if any
        periodic_trigger: Optional safety-net trigger started with the server

    Example:
        >>> server = WebhookServer(settings=settings, coalescer=JobCoalescer(job))
        >>> await server.start()
        >>> await server.wait_closed()
        >>> await server.stop()
    """

    def __init__(
        self,
        settings: Settings,
        coalescer: JobCoalescer,
        rolling_logs: Optional[RollingLogs] = None,
    ):
        self.settings = settings
        self.coalescer = coalescer
        self.rolling_logs = rolling_logs or RollingLogs.create(
            settings.log_file, settings.max_log_lines, settings.log_dir
        )
        self.periodic_trigger: Optional[PeriodicTrigger] = None

        self.state = ListenerState.ACCEPTING
        self.failure: Optional[UpdateJobError] = None
        self._closed = asyncio.Event()
        self._background: Set[asyncio.Task] = set()

        self.app = web.Application()
        self.app.router.add_route("*", "/", self.handle_request)
        self.app.router.add_route("*", "/{tail:.*}", self.handle_other)

        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    @property
    def port(self) -> Optional[int]:
        """Port actually bound, useful when listening on port 0."""
        if self.runner is None or not self.runner.addresses:
            return None
        return self.runner.addresses[0][1]

    async def handle_request(self, request: web.Request) -> web.StreamResponse:
        """Handle one webhook delivery.

        Returns:
            Plaintext acknowledgement or ignore message; dropped connection on
            bad signatures, malformed bodies and non-POST methods
        """
        if request.method != "POST" or self.state is not ListenerState.ACCEPTING:
            return self.drop_request(request)

        log = LogBuffer(name="webhook")
        timestamp = current_timestamp()
        job: Optional[asyncio.Future] = None
        try:
            log.info("Before starting work")
            body = await read_body_text(request, "Request to webhook")
            if not check_signature(self.settings.secret_bytes, body, request.headers, log):
                return self.drop_request(request)

            log.info(f"Message from github: {body[:200]}...")
            payload = parse_json(body)
            expected_ref = self.settings.expected_ref
            actual_ref = payload.get("ref") if isinstance(payload, dict) else None
            if actual_ref == expected_ref:
                job = self.coalescer.trigger(log, timestamp)
                return web.Response(text=ACKNOWLEDGEMENT)

            text = f"Ignoring push to {actual_ref}, expected {expected_ref}."
            log.info(text)
            return web.Response(text=text)
        except (BadCharacterError, ValueError) as exc:
            log.error(f"Malformed request: {exc}")
            return self.drop_request(request)
        except BODY_READ_ERRORS as exc:
            log.error(f"Failed to read request body: {exc!r}")
            return self.drop_request(request)
        except Exception as exc:
            logger.exception("Unexpected error handling request")
            log.error(f"Unexpected error handling request: {exc!r}")
            return self.drop_request(request)
        finally:
            self._spawn(self._finish(log, job))

    async def handle_other(self, request: web.Request) -> web.StreamResponse:
        """Any path other than ``/`` gets no response."""
        return self.drop_request(request)

    def drop_request(self, request: web.Request) -> web.StreamResponse:
        """Close the connection without writing a response."""
        transport = request.transport
        if transport is not None:
            transport.close()
        # Never reaches the client; aiohttp discards it on the closed transport.
        return web.Response()

    async def _finish(self, log: LogBuffer, job: Optional[Awaitable[None]]) -> None:
        error = await settle(log, job, self.rolling_logs)
        if error is not None:
            await self.shutdown(error)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def start(self) -> None:
        """Start listening and start the periodic trigger, if any."""
        self.runner = web.AppRunner(self.app, handle_signals=False)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner,
            self.settings.listen_host,
            self.settings.listen_port,
        )
        await self.site.start()

        logger.info(
            f"Webhook server listening on {self.settings.listen_host}:{self.port}",
            extra={
                "host": self.settings.listen_host,
                "port": self.port,
                "expected_ref": self.settings.expected_ref,
            },
        )

        if self.periodic_trigger is not None:
            self.periodic_trigger.start()

    async def shutdown(self, error: Optional[BaseException] = None) -> None:
        """Stop accepting connections. Only the first call has any effect."""
        if self.state is ListenerState.SHUTTING_DOWN:
            return
        self.state = ListenerState.SHUTTING_DOWN
        if error is not None:
            self.failure = UpdateJobError(
                f"Full update failed: {error}",
                details={"error_type": type(error).__name__},
            )
            self.failure.__cause__ = error
            logger.error(
                "Update failed, closing webhook server",
                exc_info=(type(error), error, error.__traceback__),
            )

        if self.periodic_trigger is not None:
            self.periodic_trigger.stop()
        if self.site is not None:
            await self.site.stop()
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def stop(self) -> None:
        """Shut down, wait for pending log flushes and release the server."""
        logger.info("Stopping webhook server...")
        await self.shutdown()

        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        if self.periodic_trigger is not None:
            await self.periodic_trigger.wait_idle()

        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Webhook server stopped")


__all__ = ["ACKNOWLEDGEMENT", "ListenerState", "WebhookServer", "read_body_text"]
