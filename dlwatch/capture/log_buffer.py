"""Drainable log buffers, one per log channel.

Playwright delivers console and network activity as events; the observers in
this package append those events here so the harvester can poll them the way
Chrome's WebDriver log buffers are polled. Reads are destructive.
"""

import logging
from collections import deque
from threading import Lock
from typing import Deque, List

from ..models.capture import LogEntry

logger = logging.getLogger(__name__)


class LogChannel:
    """Known log channel names."""
    BROWSER = "browser"
    PERFORMANCE = "performance"


class LogBuffer:
    """Bounded FIFO of LogEntry records for a single channel."""

    def __init__(self, channel: str, max_entries: int = 10000):
        """Initialize buffer.

        Args:
            channel: Channel name, e.g. ``browser`` or ``performance``
            max_entries: Oldest entries are dropped beyond this size
        """
        self.channel = channel
        self.max_entries = max_entries
        self._entries: Deque[LogEntry] = deque()
        self._dropped = 0
        self._lock = Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            if len(self._entries) >= self.max_entries:
                self._entries.popleft()
                self._dropped += 1
                if self._dropped == 1:
                    logger.warning(
                        f"Log buffer '{self.channel}' full ({self.max_entries}), dropping oldest entries"
                    )
            self._entries.append(entry)

    def drain(self) -> List[LogEntry]:
        """Remove and return every buffered entry, oldest first."""
        with self._lock:
            entries = list(self._entries)
            self._entries.clear()
        return entries

    @property
    def dropped(self) -> int:
        return self._dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"LogBuffer(channel={self.channel}, pending={len(self)}, dropped={self._dropped})"
