"""Data models for the RSS aggregator."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Feed:
    """Represents a registered RSS/Atom source."""

    url: str
    title: str = ""
    description: str | None = None
    last_success_at: datetime | None = None
    last_error: str | None = None
    last_error_at: datetime | None = None
    is_test_source: bool = False
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class Item:
    """Represents a single entry ingested from a feed."""

    feed_id: int
    guid: str
    title: str
    link: str | None = None
    author: str | None = None
    description: str | None = None
    content: str | None = None
    published_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class IngestResult:
    """Outcome of a successful single-feed ingestion."""

    feed_id: int
    created: int = 0
    updated: int = 0


@dataclass
class BatchResult:
    """Aggregated outcome of ingesting many feeds."""

    created: int = 0
    updated: int = 0
    errors: int = 0
    results: list[IngestResult] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)

    def add(self, result: IngestResult) -> None:
        self.results.append(result)
        self.created += result.created
        self.updated += result.updated

    def add_failure(self, feed_id: int, message: str) -> None:
        self.failures[feed_id] = message
        self.errors += 1

    def summary(self) -> str:
        message = f"Fetched items: {self.created} created, {self.updated} updated"
        if self.errors:
            message += f", {self.errors} errors"
        return message


@dataclass
class SeedResult:
    """Counts from seeding default feeds."""

    created: int = 0
    existed: int = 0
    errors: int = 0


@dataclass
class Stats:
    """Aggregate statistics over feeds and items."""

    feed_count: int
    item_count: int
    last_success_at: datetime | None = None
    last_success_url: str | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_error_url: str | None = None

    def describe_last_success(self) -> str:
        return _describe(self.last_success_at, self.last_success_url)

    def describe_last_error(self) -> str:
        return _describe(self.last_error_at, self.last_error_url)


def _describe(timestamp: datetime | None, url: str | None) -> str:
    if timestamp is None:
        return "Never"
    text = timestamp.strftime("%Y-%m-%d %H:%M:%S")
    return f"{text} ({url})" if url else text
