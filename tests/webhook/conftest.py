"""Shared fixtures for webhook tests."""

import pytest

from pushrelay.configuration import Settings
from pushrelay.logs import RollingLogs

from webhook_helpers import TEST_SECRET, BlockingJob


@pytest.fixture
def blocking_job():
    return BlockingJob()


@pytest.fixture
def sample_settings(tmp_path):
    return Settings(
        secret=TEST_SECRET,
        source_branch="main",
        listen_host="127.0.0.1",
        listen_port=0,
        log_dir=tmp_path / "logs",
        update_interval_seconds=300,
    )


@pytest.fixture
def rolling_logs(tmp_path):
    return RollingLogs.create("webhook-logs.md", 1000, tmp_path / "logs")
