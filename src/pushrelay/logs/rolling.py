"""Bounded, append-only log file that evicts its oldest lines."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)


class RollingLogs:
    """Keeps the ``max_lines`` most recent log lines in one file.

    Writes are serialized with an asyncio lock so batches flushed by concurrent
    requests and the periodic trigger never interleave.

    Example:
        >>> logs = RollingLogs.create("webhook-logs.md", 1000, Path("/var/log/pushrelay"))
        >>> await logs.write("Starting full...")
    """

    def __init__(self, path: Path, max_lines: int, lines: Optional[List[str]] = None):
        if max_lines < 1:
            raise ValueError("max_lines must be at least 1")
        self.path = path
        self.max_lines = max_lines
        self._lines: List[str] = list(lines or [])[-max_lines:]
        self._lock = asyncio.Lock()

    @classmethod
    def create(cls, name: str, max_lines: int, directory: Path) -> "RollingLogs":
        """Open the log ``name`` in ``directory``, loading lines already on disk."""
        path = directory / name
        lines: List[str] = []
        if path.exists():
            lines = path.read_text(encoding="utf-8").splitlines()
        return cls(path, max_lines, lines)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    async def write(self, text: Union[str, Sequence[str]]) -> None:
        new_lines = text.split("\n") if isinstance(text, str) else list(text)
        async with self._lock:
            retained = (self._lines + new_lines)[-self.max_lines:]
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._write_file, retained)
            self._lines = retained
        logger.debug(
            "Wrote %d lines to %s", len(new_lines), self.path,
            extra={"retained_lines": len(self._lines)},
        )

    def _write_file(self, lines: List[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("\n".join(lines) + "\n", encoding="utf-8")


__all__ = ["RollingLogs"]
