"""Per-invocation log buffers and the bounded rolling log file."""

from .buffer import LogBuffer, LogEntry, LogLevel, current_timestamp
from .rolling import RollingLogs

__all__ = [
    "LogBuffer",
    "LogEntry",
    "LogLevel",
    "RollingLogs",
    "current_timestamp",
]
