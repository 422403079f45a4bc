"""Per-run log accumulator returned to the caller as the sync report."""
from __future__ import annotations

import logging

logger = logging.getLogger("tabvar.sync")


class SyncLog:
    """Collects the human-readable lines of one sync run.

    Each line is also forwarded to the ``tabvar.sync`` logger. A new instance
    is created per entry point call, so concurrent runs never share lines.
    """

    def __init__(self) -> None:
        self.lines: list[str] = []

    def info(self, message: str) -> None:
        self.lines.append(message)
        logger.info(message)

    def warning(self, message: str) -> None:
        self.lines.append(message)
        logger.warning(message)

    def error(self, message: str) -> None:
        self.lines.append(message)
        logger.error(message)

    def __len__(self) -> int:
        return len(self.lines)
