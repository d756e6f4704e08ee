"""HTTPS fetch client with bounded retries on transient network errors.

Key Features:
- One keep-alive connection pool per Fetcher instance
- Only EAI_AGAIN, ETIMEDOUT and ECONNRESET failures are retried
- Fixed one second delay between attempts
- JSON decoding with the raw response text in the error
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import re
import socket
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Union

import aiohttp

from ..errors import BadResponseError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 10
RETRY_DELAY_SECONDS = 1.0

TRANSIENT_ERROR_CODES = ("EAI_AGAIN", "ETIMEDOUT", "ECONNRESET")
_TRANSIENT_PATTERN = re.compile("|".join(TRANSIENT_ERROR_CODES))
_TRANSIENT_ERRNOS = frozenset(
    code
    for code in (
        getattr(socket, "EAI_AGAIN", None),
        errno.ETIMEDOUT,
        errno.ECONNRESET,
    )
    if code is not None
)


@dataclass
class FetchOptions:
    """A single outbound request.

    ``retries`` is False for a single attempt, True for the default ceiling
    or an explicit number of attempts.
    """

    hostname: str
    path: str = ""
    port: Optional[int] = None
    method: str = "GET"
    headers: Optional[Dict[str, str]] = None
    body: Optional[str] = None
    retries: Union[bool, int] = False

    def url(self, scheme: str) -> str:
        netloc = self.hostname if self.port is None else f"{self.hostname}:{self.port}"
        return f"{scheme}://{netloc}/{self.path}"

    def to_json(self) -> str:
        return json.dumps(asdict(self))


def resolve_max_retries(retries: Union[bool, int, None]) -> int:
    if retries is None or retries is False:
        return 0
    if retries is True:
        return DEFAULT_MAX_RETRIES
    if retries < 0:
        raise ValueError("retries must not be negative")
    return retries


def is_transient_error(error: BaseException) -> bool:
    """Classify network failures that are worth retrying unchanged."""
    if isinstance(error, (asyncio.TimeoutError, ConnectionResetError)):
        return True
    if getattr(error, "errno", None) in _TRANSIENT_ERRNOS:
        return True
    return bool(_TRANSIENT_PATTERN.search(str(error)))


def parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Bad JSON: {exc}\n\n{text}") from exc


async def sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class Fetcher:
    """Retrying HTTPS client sharing one connection pool across calls.

    Example:
        >>> async with Fetcher() as fetcher:
        ...     data = await fetcher.fetch_json(
        ...         FetchOptions(hostname="api.github.com", path="rate_limit", retries=True)
        ...     )
    """

    def __init__(
        self,
        *,
        scheme: str = "https",
        keepalive_timeout: float = 60.0,
        request_timeout: float = 60.0,
    ) -> None:
        self.scheme = scheme
        self.keepalive_timeout = keepalive_timeout
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                keepalive_timeout=self.keepalive_timeout,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch_json(self, options: FetchOptions) -> Any:
        text = await self.fetch(options)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise BadResponseError(
                f"Bad response from server:\noptions: {options.to_json()}\n\n{text}",
                details={"hostname": options.hostname, "path": options.path},
            ) from exc

    async def fetch(self, options: FetchOptions) -> str:
        """Perform the request, retrying transient failures.

        The last attempt is made outside the retry loop so its error (or
        result) reaches the caller unchanged.
        """
        max_retries = resolve_max_retries(options.retries)
        for attempt in range(max_retries - 1):
            try:
                return await self._request(options)
            except Exception as exc:
                if not is_transient_error(exc):
                    raise
                logger.warning(
                    "Transient error fetching %s (attempt %d/%d): %s",
                    options.url(self.scheme),
                    attempt + 1,
                    max_retries,
                    exc,
                )
            await sleep(RETRY_DELAY_SECONDS)
        return await self._request(options)

    async def _request(self, options: FetchOptions) -> str:
        return await do_request(self._get_session(), options, self.scheme)


async def do_request(session: aiohttp.ClientSession, options: FetchOptions, scheme: str) -> str:
    async with session.request(
        options.method,
        options.url(scheme),
        headers=options.headers,
        data=options.body,
    ) as response:
        return await response.text()


async def make_http_request(options: FetchOptions) -> str:
    """Single plain-HTTP request without pooling or retries. Only used for testing."""
    async with aiohttp.ClientSession() as session:
        return await do_request(session, options, "http")


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "FetchOptions",
    "Fetcher",
    "is_transient_error",
    "make_http_request",
    "parse_json",
    "resolve_max_retries",
]
