"""Bounded in-memory log of feed fetch outcomes."""

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime

from rss_aggregator.config import DEFAULT_FETCH_LOG_SIZE
from rss_aggregator.models import utcnow


@dataclass(frozen=True)
class FetchLogEntry:
    timestamp: datetime
    kind: str  # "success" or "error"
    feed_url: str
    message: str


class FetchLog:
    """Keeps the most recent fetch outcomes, dropping the oldest first."""

    def __init__(self, max_size: int = DEFAULT_FETCH_LOG_SIZE):
        self._entries: deque[FetchLogEntry] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def add(self, kind: str, feed_url: str, message: str) -> FetchLogEntry:
        entry = FetchLogEntry(utcnow(), kind, feed_url, message)
        with self._lock:
            self._entries.append(entry)
        return entry

    def success(self, feed_url: str, message: str) -> FetchLogEntry:
        return self.add("success", feed_url, message)

    def error(self, feed_url: str, message: str) -> FetchLogEntry:
        return self.add("error", feed_url, message)

    def entries(self) -> list[FetchLogEntry]:
        """All entries, newest first."""
        with self._lock:
            return list(reversed(self._entries))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
