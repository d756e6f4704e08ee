"""Append-only log buffer flushed once per request or job invocation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .rolling import RollingLogs

logger = logging.getLogger(__name__)


def current_timestamp() -> str:
    """ISO-8601 UTC timestamp, used as the heading of each job run."""
    return datetime.now(timezone.utc).isoformat()


class LogLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    level: LogLevel
    message: str

    def render(self) -> str:
        if self.level is LogLevel.ERROR:
            return f"Error: {self.message}"
        return self.message


@dataclass
class LogBuffer:
    """Collects the log lines of one request or periodic run.

    Each entry is mirrored to the stdlib logger as it is appended. The buffer is
    written to the rolling log in a single batch by :meth:`flush`, which only
    writes the first time it is called.

    Example:
        >>> log = LogBuffer(name="webhook")
        >>> log.info("Before starting work")
        >>> await log.flush(rolling_logs)
    """

    name: str = "webhook"
    entries: List[LogEntry] = field(default_factory=list)
    _flushed: bool = field(default=False, init=False, repr=False)

    def info(self, message: str) -> None:
        self._append(LogLevel.INFO, message)
        logger.info(message, extra={"log_buffer": self.name})

    def error(self, message: str) -> None:
        self._append(LogLevel.ERROR, message)
        logger.error(message, extra={"log_buffer": self.name})

    def _append(self, level: LogLevel, message: str) -> None:
        self.entries.append(LogEntry(datetime.now(timezone.utc), level, message))

    @property
    def has_errors(self) -> bool:
        return any(entry.level is LogLevel.ERROR for entry in self.entries)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def join(self) -> str:
        return "\n".join(entry.render() for entry in self.entries)

    async def flush(self, sink: Optional[RollingLogs]) -> bool:
        """Write all entries to ``sink`` as one batch.

        Returns:
            True if this call wrote the batch, False if already flushed
        """
        if self._flushed:
            return False
        self._flushed = True
        if sink is not None:
            await sink.write(self.join())
        return True


__all__ = ["LogBuffer", "LogEntry", "LogLevel", "current_timestamp"]
