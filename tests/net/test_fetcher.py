"""Tests for the retrying fetch client."""

import asyncio
import errno
import json
import socket
from unittest.mock import AsyncMock

import pytest
from aiohttp import web

from pushrelay.errors import BadResponseError
from pushrelay.net.fetcher import (
    DEFAULT_MAX_RETRIES,
    RETRY_DELAY_SECONDS,
    FetchOptions,
    Fetcher,
    is_transient_error,
    make_http_request,
    parse_json,
    resolve_max_retries,
)


@pytest.fixture
def no_sleep(monkeypatch):
    sleep = AsyncMock()
    monkeypatch.setattr("pushrelay.net.fetcher.sleep", sleep)
    return sleep


def _fetcher_with(monkeypatch, *outcomes) -> tuple:
    request = AsyncMock(side_effect=list(outcomes))
    fetcher = Fetcher()
    monkeypatch.setattr(fetcher, "_request", request)
    return fetcher, request


# ---------------------------------------------------------------------------
# Retry Policy Tests
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "retries,expected",
    [(False, 0), (None, 0), (True, DEFAULT_MAX_RETRIES), (0, 0), (1, 1), (4, 4)],
)
def test_resolve_max_retries(retries, expected):
    assert resolve_max_retries(retries) == expected


def test_default_ceiling_is_ten():
    assert DEFAULT_MAX_RETRIES == 10


def test_resolve_max_retries_rejects_negative():
    with pytest.raises(ValueError):
        resolve_max_retries(-1)


@pytest.mark.parametrize(
    "error",
    [
        ConnectionResetError("Connection reset by peer"),
        asyncio.TimeoutError(),
        OSError(errno.ETIMEDOUT, "Operation timed out"),
        OSError(errno.ECONNRESET, "Connection reset"),
        socket.gaierror(socket.EAI_AGAIN, "Temporary failure in name resolution"),
        RuntimeError("getaddrinfo EAI_AGAIN api.github.com"),
        RuntimeError("read ECONNRESET"),
        RuntimeError("connect ETIMEDOUT 140.82.112.6:443"),
    ],
)
def test_transient_errors(error):
    assert is_transient_error(error) is True


@pytest.mark.parametrize(
    "error",
    [
        OSError(errno.ECONNREFUSED, "Connection refused"),
        ValueError("EPROTO"),
        RuntimeError("certificate verify failed"),
        KeyError("ref"),
    ],
)
def test_permanent_errors(error):
    assert is_transient_error(error) is False


# ---------------------------------------------------------------------------
# Fetch Tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("retries", [2, 3, 10])
async def test_fetch_succeeds_after_transient_failures(monkeypatch, no_sleep, retries):
    """Test a request failing with ECONNRESET retries-1 times then succeeding."""
    failures = [ConnectionResetError("ECONNRESET")] * (retries - 1)
    fetcher, request = _fetcher_with(monkeypatch, *failures, "ok")

    result = await fetcher.fetch(FetchOptions(hostname="example.com", retries=retries))

    assert result == "ok"
    assert request.await_count == retries
    assert no_sleep.await_count == retries - 1
    no_sleep.assert_awaited_with(RETRY_DELAY_SECONDS)


@pytest.mark.asyncio
async def test_fetch_permanent_error_propagates_immediately(monkeypatch, no_sleep):
    """Test a non-listed error is raised on the first failure."""
    fetcher, request = _fetcher_with(monkeypatch, ValueError("EPROTO"), "never")

    with pytest.raises(ValueError, match="EPROTO"):
        await fetcher.fetch(FetchOptions(hostname="example.com", retries=True))

    assert request.await_count == 1
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_exhausted_retries_raise_last_error(monkeypatch, no_sleep):
    errors = [ConnectionResetError(f"ECONNRESET {i}") for i in range(3)]
    fetcher, request = _fetcher_with(monkeypatch, *errors)

    with pytest.raises(ConnectionResetError, match="ECONNRESET 2"):
        await fetcher.fetch(FetchOptions(hostname="example.com", retries=3))

    assert request.await_count == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("retries", [False, 0, 1])
async def test_fetch_without_retries_makes_single_attempt(monkeypatch, no_sleep, retries):
    fetcher, request = _fetcher_with(monkeypatch, ConnectionResetError("ECONNRESET"), "ok")

    with pytest.raises(ConnectionResetError):
        await fetcher.fetch(FetchOptions(hostname="example.com", retries=retries))

    assert request.await_count == 1
    no_sleep.assert_not_awaited()


# ---------------------------------------------------------------------------
# JSON Tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fetch_json_parses_response(monkeypatch):
    fetcher, _ = _fetcher_with(monkeypatch, '{"versions": ["1.0.0"]}')

    data = await fetcher.fetch_json(FetchOptions(hostname="registry.npmjs.org", path="react"))

    assert data == {"versions": ["1.0.0"]}


@pytest.mark.asyncio
async def test_fetch_json_bad_response_includes_text_and_options(monkeypatch):
    """Test parse failures carry the raw text and the request options."""
    fetcher, _ = _fetcher_with(monkeypatch, "<html>502 Bad Gateway</html>")
    options = FetchOptions(hostname="registry.npmjs.org", path="react", retries=True)

    with pytest.raises(BadResponseError) as exc_info:
        await fetcher.fetch_json(options)

    message = str(exc_info.value)
    assert message.startswith("Bad response from server:\noptions: ")
    assert '"hostname": "registry.npmjs.org"' in message
    assert message.endswith("\n\n<html>502 Bad Gateway</html>")
    assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)


def test_parse_json_error_includes_text():
    with pytest.raises(ValueError, match="not json"):
        parse_json("not json")


def test_fetch_options_url():
    assert FetchOptions(hostname="api.github.com", path="repos/a/b").url("https") == (
        "https://api.github.com/repos/a/b"
    )
    assert FetchOptions(hostname="localhost", port=8080, path="x").url("http") == (
        "http://localhost:8080/x"
    )


# ---------------------------------------------------------------------------
# Local Server Tests
# ---------------------------------------------------------------------------


async def _start_local_server():
    peers = []

    async def handle(request: web.Request) -> web.Response:
        peers.append(request.transport.get_extra_info("peername"))
        body = await request.text()
        return web.Response(text=json.dumps({"path": request.path, "method": request.method, "body": body}))

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handle)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    return runner, runner.addresses[0][1], peers


@pytest.mark.asyncio
async def test_fetcher_reuses_connections():
    """Test consecutive requests from one fetcher share a keep-alive connection."""
    runner, port, peers = await _start_local_server()
    try:
        async with Fetcher(scheme="http") as fetcher:
            options = FetchOptions(hostname="127.0.0.1", port=port, path="a")
            first = await fetcher.fetch_json(options)
            await fetcher.fetch_json(options)
    finally:
        await runner.cleanup()

    assert first == {"path": "/a", "method": "GET", "body": ""}
    assert len(peers) == 2
    assert peers[0] == peers[1]


@pytest.mark.asyncio
async def test_make_http_request_sends_method_and_body():
    runner, port, _ = await _start_local_server()
    try:
        text = await make_http_request(
            FetchOptions(hostname="127.0.0.1", port=port, path="hook", method="POST", body="payload")
        )
    finally:
        await runner.cleanup()

    assert json.loads(text) == {"path": "/hook", "method": "POST", "body": "payload"}
