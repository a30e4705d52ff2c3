"""RSS/Atom feed parsing using feedparser."""

import calendar
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from time import struct_time
from typing import Iterator

import feedparser

from rss_aggregator.errors import FeedParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedItem:
    """One normalized entry from a feed document."""

    guid: str
    title: str
    link: str | None = None
    author: str | None = None
    description: str | None = None
    content: str | None = None
    published_at: datetime | None = None


class ParsedItems:
    """Lazy, restartable sequence of items in document order.

    Entries are normalized while iterating; every call to ``iter()`` starts
    again from the first entry.
    """

    def __init__(self, entries: list):
        self._entries = entries

    def __iter__(self) -> Iterator[ParsedItem]:
        for entry in self._entries:
            item = _entry_to_item(entry)
            if item is not None:
                yield item

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class ParsedFeed:
    """Result of parsing an RSS/Atom feed."""

    title: str
    description: str | None
    site_link: str | None
    items: ParsedItems


def parse_feed(raw: bytes, content_type: str | None = None) -> ParsedFeed:
    """Parse an RSS or Atom document.

    Args:
        raw: The document bytes as fetched.
        content_type: The Content-Type header, used as an encoding hint.

    Returns:
        ParsedFeed with feed metadata and items.

    Raises:
        FeedParseError: If the document is not a valid RSS or Atom feed.
    """
    response_headers = {"content-type": content_type} if content_type else None
    parsed = feedparser.parse(io.BytesIO(raw), response_headers=response_headers)

    if not parsed.get("version"):
        if parsed.get("bozo") and parsed.get("bozo_exception"):
            raise FeedParseError(
                f"Document is not a valid RSS or Atom feed: {parsed.bozo_exception}"
            )
        raise FeedParseError("Document is not a valid RSS or Atom feed")

    if parsed.get("bozo"):
        logger.debug("Feed has formatting issues: %s", parsed.get("bozo_exception"))

    return ParsedFeed(
        title=parsed.feed.get("title", ""),
        description=parsed.feed.get("description") or parsed.feed.get("subtitle"),
        site_link=parsed.feed.get("link"),
        items=ParsedItems(list(parsed.entries)),
    )


def _entry_to_item(entry) -> ParsedItem | None:
    """Normalize a feedparser entry; None when it has no usable identity."""
    guid = entry.get("id") or entry.get("guid") or entry.get("link")
    if not guid:
        logger.warning(
            "Skipping entry with no identifier: %s", entry.get("title", "unknown")
        )
        return None

    description = entry.get("summary") or entry.get("description")
    return ParsedItem(
        guid=guid,
        title=entry.get("title", ""),
        link=entry.get("link"),
        author=_entry_author(entry),
        description=description,
        content=_entry_content(entry) or description,
        published_at=_parse_date(entry),
    )


def _entry_author(entry) -> str | None:
    if entry.get("author"):
        return entry["author"]
    for author in entry.get("authors") or []:
        if author.get("name"):
            return author["name"]
    return None


def _entry_content(entry) -> str | None:
    for content in entry.get("content") or []:
        if content.get("value"):
            return content["value"]
    return None


def _parse_date(entry) -> datetime | None:
    """Parse publication date from a feedparser entry as UTC.

    feedparser hands back struct_time values already normalized to UTC
    for both RFC 822 and ISO 8601 sources.
    """
    for field in ("published_parsed", "updated_parsed"):
        time_struct = entry.get(field)
        if isinstance(time_struct, struct_time):
            try:
                return datetime.fromtimestamp(calendar.timegm(time_struct), tz=timezone.utc)
            except (ValueError, OverflowError):
                continue
    return None
