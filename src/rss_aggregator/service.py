"""Public API of the aggregator: feeds, items, ingestion and statistics."""

import logging

from rss_aggregator.config import Settings
from rss_aggregator.coordinator import IngestionCoordinator
from rss_aggregator.database import Database
from rss_aggregator.errors import DuplicateUrlError, NotFoundError, ValidationError
from rss_aggregator.fetch_log import FetchLog, FetchLogEntry
from rss_aggregator.fetcher import FeedFetcher
from rss_aggregator.models import (
    BatchResult,
    Feed,
    IngestResult,
    Item,
    SeedResult,
    Stats,
)
from rss_aggregator.validation import is_test_source, validate_feed_url

logger = logging.getLogger(__name__)

DEFAULT_FEEDS = [
    "https://feeds.bbci.co.uk/news/rss.xml",
    "http://rss.cnn.com/rss/cnn_topstories.rss",
    "https://www.wired.com/feed/rss",
    "https://habr.com/ru/rss/articles/?fl=ru",
]


class Aggregator:
    """Entry point used by the admin surface, the CLI and the scheduler."""

    def __init__(
        self,
        db: Database,
        coordinator: IngestionCoordinator,
        settings: Settings | None = None,
    ):
        self.db = db
        self.coordinator = coordinator
        self.settings = settings or Settings()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Aggregator":
        """Build a connected aggregator with a real HTTP fetcher."""
        db = Database(settings.db_path)
        db.connect()
        coordinator = IngestionCoordinator(
            db,
            FeedFetcher(timeout=settings.fetch_timeout),
            fetch_log=FetchLog(settings.fetch_log_size),
            max_workers=settings.fetch_workers,
        )
        return cls(db, coordinator, settings)

    def close(self) -> None:
        close_fetcher = getattr(self.coordinator.fetcher, "close", None)
        if close_fetcher is not None:
            close_fetcher()
        self.db.close()

    # --- Feeds ---

    def create_feed(self, url: str) -> Feed:
        """Register a new feed source.

        Raises:
            ValidationError: If the URL is not an http(s) URL.
            DuplicateUrlError: If the URL is already registered.
        """
        url = validate_feed_url(url)
        feed = Feed(
            url=url,
            is_test_source=is_test_source(url, self.settings.test_source_patterns),
        )
        feed = self.db.add_feed(feed)
        logger.info("Feed created: %s", url)
        return feed

    def get_feed(self, feed_id: int) -> Feed:
        feed = self.db.get_feed_by_id(feed_id)
        if feed is None:
            raise NotFoundError("feed", feed_id)
        return feed

    def list_feeds(self) -> list[Feed]:
        return self.db.get_all_feeds()

    def delete_feed(self, feed_id: int) -> None:
        # Waits for a running ingestion of this feed to finish
        with self.coordinator.feed_lock(feed_id):
            deleted = self.db.delete_feed(feed_id)
        if not deleted:
            raise NotFoundError("feed", feed_id)

    def delete_all_feeds(self) -> int:
        return self.db.delete_all_feeds()

    def seed_feeds(self, urls: list[str] | None = None) -> SeedResult:
        """Create each URL that is not registered yet."""
        result = SeedResult()
        for url in DEFAULT_FEEDS if urls is None else urls:
            try:
                self.create_feed(url)
                result.created += 1
            except DuplicateUrlError:
                logger.info("Feed already exists: %s", url)
                result.existed += 1
            except ValidationError as e:
                logger.warning("Failed to create feed %s: %s", url, e)
                result.errors += 1
        return result

    # --- Ingestion ---

    def ingest_feed(self, feed_id: int) -> IngestResult:
        return self.coordinator.ingest_feed(feed_id)

    def ingest_all(self, exclude_test_sources: bool = False) -> BatchResult:
        return self.coordinator.ingest_all(exclude_test_sources=exclude_test_sources)

    def fetch_log(self) -> list[FetchLogEntry]:
        return self.coordinator.fetch_log.entries()

    # --- Items ---

    def get_item(self, item_id: int) -> Item:
        item = self.db.get_item_by_id(item_id)
        if item is None:
            raise NotFoundError("item", item_id)
        return item

    def list_items(
        self, feed_id: int | None = None, limit: int = 50, offset: int = 0
    ) -> list[Item]:
        return self.db.get_items(feed_id=feed_id, limit=limit, offset=offset)

    def delete_item(self, item_id: int) -> None:
        if not self.db.delete_item(item_id):
            raise NotFoundError("item", item_id)

    def delete_all_items(self) -> int:
        return self.db.delete_all_items()

    # --- Statistics ---

    def get_stats(self) -> Stats:
        stats = Stats(feed_count=self.db.count_feeds(), item_count=self.db.count_items())
        last_success = self.db.get_last_success_feed()
        if last_success is not None:
            stats.last_success_at = last_success.last_success_at
            stats.last_success_url = last_success.url
        last_error = self.db.get_last_error_feed()
        if last_error is not None:
            stats.last_error_at = last_error.last_error_at
            stats.last_error = last_error.last_error
            stats.last_error_url = last_error.url
        return stats
