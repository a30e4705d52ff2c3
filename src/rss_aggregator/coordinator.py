"""Fetch, parse and upsert orchestration for RSS Aggregator."""

import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Protocol

from rss_aggregator.config import DEFAULT_FETCH_WORKERS
from rss_aggregator.database import Database
from rss_aggregator.errors import (
    FeedParseError,
    FetchError,
    IngestError,
    NotFoundError,
)
from rss_aggregator.feed_parser import parse_feed
from rss_aggregator.fetch_log import FetchLog
from rss_aggregator.fetcher import FetchedDocument
from rss_aggregator.models import BatchResult, Feed, IngestResult, utcnow

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    def fetch(self, url: str) -> FetchedDocument: ...


class KeyedLock:
    """A table of locks, one per key, created on demand.

    Entries are dropped once no thread holds or waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[object, list] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def is_held(self, key) -> bool:
        with self._guard:
            entry = self._locks.get(key)
        return entry is not None and entry[0].locked()


class IngestionCoordinator:
    """Runs the fetch -> parse -> upsert pipeline and records fetch status.

    At most one ingestion per feed id runs at a time; a second caller for the
    same feed waits for the first to finish and then performs its own fetch.
    Different feeds are ingested in parallel by ``ingest_all``.
    """

    def __init__(
        self,
        db: Database,
        fetcher: Fetcher,
        fetch_log: FetchLog | None = None,
        max_workers: int = DEFAULT_FETCH_WORKERS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.fetcher = fetcher
        self.fetch_log = fetch_log if fetch_log is not None else FetchLog()
        self.max_workers = max_workers
        self._clock = clock
        self._locks = KeyedLock()

    def is_ingesting(self, feed_id: int) -> bool:
        return self._locks.is_held(feed_id)

    def feed_lock(self, feed_id: int):
        """Hold the ingestion lock of one feed, e.g. while deleting it."""
        return self._locks.hold(feed_id)

    def ingest_feed(self, feed_id: int) -> IngestResult:
        """Fetch, parse and store one feed.

        Raises:
            NotFoundError: If the feed does not exist.
            IngestError: If fetching or parsing failed. The feed's
                last_error and last_error_at are written before raising.
        """
        with self._locks.hold(feed_id):
            feed = self.db.get_feed_by_id(feed_id)
            if feed is None:
                raise NotFoundError("feed", feed_id)
            return self._ingest(feed)

    def _ingest(self, feed: Feed) -> IngestResult:
        try:
            document = self.fetcher.fetch(feed.url)
            parsed = parse_feed(document.content, document.content_type)
            items = list(parsed.items)
        except (FetchError, FeedParseError) as e:
            self._record_failure(feed, e)
            raise IngestError(feed.id, e) from e
        except sqlite3.Error:
            raise
        except Exception as e:
            logger.exception("Feed %s unexpected error", feed.url)
            self._record_failure(feed, e)
            raise IngestError(feed.id, e) from e

        now = self._clock()
        success_at = now
        if feed.last_success_at is not None and feed.last_success_at > now:
            success_at = feed.last_success_at

        result = IngestResult(feed_id=feed.id)
        with self.db.transaction():
            # Deleted while fetching
            if self.db.get_feed_by_id(feed.id) is None:
                raise NotFoundError("feed", feed.id)
            for item in items:
                if self.db.upsert_item(feed.id, item, now):
                    result.created += 1
                else:
                    result.updated += 1
            self.db.record_fetch_success(
                feed.id, success_at, parsed.title, parsed.description
            )

        logger.info(
            "Feed %s: %d created, %d updated", feed.url, result.created, result.updated
        )
        self.fetch_log.success(
            feed.url,
            f"Successfully fetched feed: {result.created} created, {result.updated} updated",
        )
        return result

    def _record_failure(self, feed: Feed, error: Exception) -> None:
        logger.warning("Feed %s error: %s", feed.url, error)
        self.db.record_fetch_error(feed.id, str(error), self._clock())
        self.fetch_log.error(feed.url, f"Failed to fetch feed: {error}")

    def ingest_all(
        self,
        exclude_test_sources: bool = False,
        feed_ids: list[int] | None = None,
    ) -> BatchResult:
        """Ingest every targeted feed; one feed's failure never aborts the rest.

        Args:
            exclude_test_sources: Skip feeds classified as test sources.
            feed_ids: Restrict the batch to these feeds.

        Returns:
            BatchResult with summed counts and per-feed failures.
        """
        feeds = self.db.get_feeds_for_fetch(exclude_test_sources, feed_ids)
        batch = BatchResult()
        if not feeds:
            return batch

        workers = max(1, min(self.max_workers, len(feeds)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self.ingest_feed, f.id): f for f in feeds}
            for future in as_completed(futures):
                feed = futures[future]
                try:
                    batch.add(future.result())
                except (IngestError, NotFoundError) as e:
                    batch.add_failure(feed.id, str(e))
                except sqlite3.Error:
                    raise
                except Exception as e:
                    logger.exception("Feed %s unexpected error", feed.url)
                    batch.add_failure(feed.id, str(e))

        batch.results.sort(key=lambda r: r.feed_id)
        return batch
