"""In-memory runtime log shared by one runtime's components."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

logger = logging.getLogger("widgetflow.runtime")


class RuntimeLog:
    """Timestamped message buffer mirrored to the ``widgetflow.runtime`` logger.

    When *enabled* is false nothing is buffered or emitted.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._entries: list[str] = []

    def log(self, message: str, level: int = logging.DEBUG) -> None:
        if not self.enabled:
            return
        stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        self._entries.append(f"[{stamp}] {message}")
        logger.log(level, message)

    def entries(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
