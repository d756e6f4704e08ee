"""Tests for wiring the full update job into the listener."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pushrelay.logs import LogBuffer
from pushrelay.net import Fetcher
from pushrelay.webhook.server import ListenerState
from pushrelay.webhook.service import webhook_server


@pytest.mark.asyncio
async def test_job_receives_settings_timestamp_fetcher_and_log(sample_settings, rolling_logs):
    """Test the wrapped job writes the run heading and delegates."""
    job = AsyncMock()
    fetcher = Fetcher()
    server = webhook_server(sample_settings, job, fetcher=fetcher, rolling_logs=rolling_logs)

    log = LogBuffer()
    await server.coalescer.trigger(log, "2024-01-15T10:30:00+00:00")

    job.assert_awaited_once_with(sample_settings, "2024-01-15T10:30:00+00:00", fetcher, log)
    assert [entry.message for entry in log.entries] == [
        "Starting update",
        "",
        "",
        "# 2024-01-15T10:30:00+00:00",
        "",
        "Starting full...",
    ]


def test_listener_and_periodic_trigger_share_coalescer(sample_settings, rolling_logs):
    server = webhook_server(sample_settings, AsyncMock(), rolling_logs=rolling_logs)

    trigger = server.periodic_trigger
    assert trigger is not None
    assert trigger.coalescer is server.coalescer
    assert trigger.interval_seconds == sample_settings.update_interval_seconds
    assert trigger.rolling_logs is rolling_logs


@pytest.mark.asyncio
async def test_periodic_trigger_runs_with_server(sample_settings, rolling_logs):
    server = webhook_server(sample_settings, AsyncMock(), rolling_logs=rolling_logs)
    await server.start()
    try:
        assert server.periodic_trigger.running is True
    finally:
        await server.stop()

    assert server.periodic_trigger.running is False


@pytest.mark.asyncio
async def test_periodic_failure_shuts_down_listener(sample_settings, rolling_logs):
    """Test a failed periodic update applies the same fail-fast policy."""
    job = AsyncMock(side_effect=RuntimeError("upload failed"))
    server = webhook_server(sample_settings, job, rolling_logs=rolling_logs)
    await server.start()
    try:
        await server.periodic_trigger.tick()
        await asyncio.wait_for(server.wait_closed(), timeout=5)

        assert server.state is ListenerState.SHUTTING_DOWN
        assert isinstance(server.failure.__cause__, RuntimeError)
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_owned_fetcher_closed_with_server(sample_settings, rolling_logs, monkeypatch):
    close = AsyncMock()
    monkeypatch.setattr(Fetcher, "close", close)
    server = webhook_server(sample_settings, AsyncMock(), rolling_logs=rolling_logs)

    await server.start()
    await server.stop()

    close.assert_awaited_once()
