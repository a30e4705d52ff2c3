"""Admin actions for RSS Aggregator, exposed as tools returning JSON."""

import json

from langchain_core.tools import tool

from rss_aggregator.errors import (
    DuplicateUrlError,
    IngestError,
    NotFoundError,
    ValidationError,
)
from rss_aggregator.models import Feed, Item
from rss_aggregator.service import Aggregator

# Module-level aggregator reference, set during startup
_aggregator: Aggregator | None = None


def set_aggregator(aggregator: Aggregator | None) -> None:
    """Set the aggregator instance used by all tools."""
    global _aggregator
    _aggregator = aggregator


def _get_aggregator() -> Aggregator:
    """Get the aggregator instance, raising if not set."""
    if _aggregator is None:
        raise RuntimeError("Aggregator not initialized. Call set_aggregator() first.")
    return _aggregator


def _error(message: str, **extra) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


def _dt(value) -> str | None:
    return value.isoformat() if value else None


def _feed_dict(feed: Feed) -> dict:
    return {
        "id": feed.id,
        "url": feed.url,
        "title": feed.title,
        "description": feed.description,
        "is_test_source": feed.is_test_source,
        "created_at": _dt(feed.created_at),
        "last_success_at": _dt(feed.last_success_at),
        "last_error": feed.last_error,
        "last_error_at": _dt(feed.last_error_at),
    }


def _item_dict(item: Item) -> dict:
    return {
        "id": item.id,
        "feed_id": item.feed_id,
        "guid": item.guid,
        "title": item.title,
        "link": item.link,
        "author": item.author,
        "published_at": _dt(item.published_at),
        "created_at": _dt(item.created_at),
    }


@tool
def create_feed(url: str) -> str:
    """Register a new RSS or Atom feed by URL.

    Args:
        url: The URL of the feed to register.
    """
    aggregator = _get_aggregator()
    try:
        feed = aggregator.create_feed(url)
    except (ValidationError, DuplicateUrlError) as e:
        return _error(f"Failed to create feed: {e}")
    return json.dumps({
        "status": "success",
        "message": "Feed created successfully",
        "feed": _feed_dict(feed),
    })


@tool
def list_feeds() -> str:
    """List all registered feeds with their fetch status."""
    feeds = _get_aggregator().list_feeds()
    return json.dumps({
        "feeds": [_feed_dict(feed) for feed in feeds],
        "total": len(feeds),
    })


@tool
def fetch_feed(feed_id: int) -> str:
    """Fetch one feed now and store its items.

    Args:
        feed_id: Id of the feed to fetch.
    """
    aggregator = _get_aggregator()
    try:
        result = aggregator.ingest_feed(feed_id)
    except NotFoundError:
        return _error("Feed not found", code="not_found")
    except IngestError as e:
        return _error(f"Failed to fetch feed: {e}")
    return json.dumps({
        "status": "success",
        "message": (
            f"Feed fetched successfully: {result.created} items created, "
            f"{result.updated} items updated"
        ),
        "created": result.created,
        "updated": result.updated,
    })


@tool
def fetch_all_feeds() -> str:
    """Fetch every registered feed, test sources included, and store their items."""
    aggregator = _get_aggregator()
    if not aggregator.list_feeds():
        return _error("No feeds available")
    batch = aggregator.ingest_all(exclude_test_sources=False)
    return json.dumps({
        "status": "success",
        "message": batch.summary(),
        "created": batch.created,
        "updated": batch.updated,
        "errors": batch.errors,
    })


@tool
def delete_feed(feed_id: int) -> str:
    """Delete a feed and its items.

    Args:
        feed_id: Id of the feed to delete.
    """
    try:
        _get_aggregator().delete_feed(feed_id)
    except NotFoundError:
        return _error("Feed not found", code="not_found")
    return json.dumps({"status": "success", "message": "Feed deleted successfully"})


@tool
def delete_all_feeds() -> str:
    """Delete every feed and every item."""
    deleted = _get_aggregator().delete_all_feeds()
    return json.dumps({
        "status": "success",
        "message": "All feeds deleted successfully",
        "deleted": deleted,
    })


@tool
def list_items(feed_id: int | None = None, limit: int = 50, offset: int = 0) -> str:
    """List stored items, newest first.

    Args:
        feed_id: Optional feed id to filter by.
        limit: Maximum number of items to return (default 50).
        offset: Number of items to skip.
    """
    aggregator = _get_aggregator()
    items = aggregator.list_items(feed_id=feed_id, limit=limit, offset=offset)
    total = aggregator.db.count_items(feed_id)
    return json.dumps({
        "items": [_item_dict(item) for item in items],
        "total": total,
        "has_more": total > offset + len(items),
    })


@tool
def get_item(item_id: int) -> str:
    """Show one item with its description and content.

    Args:
        item_id: Id of the item.
    """
    try:
        item = _get_aggregator().get_item(item_id)
    except NotFoundError:
        return _error("Item not found", code="not_found")
    return json.dumps({
        "item": {
            **_item_dict(item),
            "description": item.description,
            "content": item.content,
        },
    })


@tool
def delete_all_items() -> str:
    """Delete every stored item. Feeds are kept."""
    deleted = _get_aggregator().delete_all_items()
    return json.dumps({
        "status": "success",
        "message": "All items deleted successfully",
        "deleted": deleted,
    })


@tool
def get_stats() -> str:
    """Show feed and item counts and the most recent fetch outcomes."""
    stats = _get_aggregator().get_stats()
    return json.dumps({
        "total_feeds": stats.feed_count,
        "total_items": stats.item_count,
        "last_successful_fetch": stats.describe_last_success(),
        "last_failed_fetch": stats.describe_last_error(),
        "last_error": stats.last_error,
    })


@tool
def seed_feeds() -> str:
    """Register the default set of feeds."""
    result = _get_aggregator().seed_feeds()
    message = f"Seeded feeds: {result.created} created"
    if result.existed:
        message += f", {result.existed} already existed"
    if result.errors:
        message += f", {result.errors} errors"
    return json.dumps({"status": "success", "message": message})


@tool
def get_fetch_log(limit: int = 100) -> str:
    """Show the most recent fetch outcomes, newest first.

    Args:
        limit: Maximum number of entries to return (default 100).
    """
    entries = _get_aggregator().fetch_log()[:limit]
    return json.dumps({
        "entries": [
            {
                "timestamp": entry.timestamp.isoformat(),
                "type": entry.kind,
                "feed_url": entry.feed_url,
                "message": entry.message,
            }
            for entry in entries
        ],
    })


TOOLS = [
    create_feed,
    list_feeds,
    fetch_feed,
    fetch_all_feeds,
    delete_feed,
    delete_all_feeds,
    list_items,
    get_item,
    delete_all_items,
    get_stats,
    seed_feeds,
    get_fetch_log,
]
