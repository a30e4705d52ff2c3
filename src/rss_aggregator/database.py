"""SQLite storage for feeds and items."""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from rss_aggregator.errors import DuplicateUrlError
from rss_aggregator.feed_parser import ParsedItem
from rss_aggregator.models import Feed, Item

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT UNIQUE NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    description TEXT,
    last_success_at TEXT,
    last_error TEXT,
    last_error_at TEXT,
    is_test_source INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    guid TEXT NOT NULL,
    title TEXT NOT NULL,
    link TEXT,
    author TEXT,
    description TEXT,
    content TEXT,
    published_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(feed_id, guid)
);

CREATE INDEX IF NOT EXISTS idx_items_feed_id ON items(feed_id);
CREATE INDEX IF NOT EXISTS idx_items_created_at ON items(created_at);
CREATE INDEX IF NOT EXISTS idx_feeds_last_success_at ON feeds(last_success_at);
CREATE INDEX IF NOT EXISTS idx_feeds_last_error_at ON feeds(last_error_at);
"""


class Database:
    """SQLite database manager for feeds and items.

    One connection is shared between threads; every access goes through a
    re-entrant lock, and ``transaction()`` holds it until commit or rollback.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run a block of writes atomically.

        Nested blocks join the outermost one; only the outermost commits.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.conn.rollback()
                raise
            self._depth -= 1
            if self._depth == 0:
                self.conn.commit()

    def _fetchone(self, query: str, params: tuple | list = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(query, params).fetchall()

    # --- Feed operations ---

    def add_feed(self, feed: Feed) -> Feed:
        """Insert a new feed and return it with its assigned id.

        Raises:
            DuplicateUrlError: If a feed with the same URL already exists.
        """
        try:
            with self.transaction():
                cursor = self.conn.execute(
                    """INSERT INTO feeds (url, title, description, last_success_at,
                       last_error, last_error_at, is_test_source, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        feed.url,
                        feed.title,
                        feed.description,
                        _dt_to_str(feed.last_success_at),
                        feed.last_error,
                        _dt_to_str(feed.last_error_at),
                        int(feed.is_test_source),
                        _dt_to_str(feed.created_at),
                    ),
                )
        except sqlite3.IntegrityError:
            raise DuplicateUrlError(feed.url)
        feed.id = cursor.lastrowid
        return feed

    def get_feed_by_url(self, url: str) -> Feed | None:
        """Look up a feed by its URL."""
        row = self._fetchone("SELECT * FROM feeds WHERE url = ?", (url,))
        return _row_to_feed(row) if row else None

    def get_feed_by_id(self, feed_id: int) -> Feed | None:
        """Look up a feed by its id."""
        row = self._fetchone("SELECT * FROM feeds WHERE id = ?", (feed_id,))
        return _row_to_feed(row) if row else None

    def get_all_feeds(self) -> list[Feed]:
        """Return all feeds, newest first."""
        rows = self._fetchall("SELECT * FROM feeds ORDER BY created_at DESC, id DESC")
        return [_row_to_feed(r) for r in rows]

    def get_feeds_for_fetch(
        self,
        exclude_test_sources: bool = False,
        feed_ids: list[int] | None = None,
    ) -> list[Feed]:
        """Return the feeds an ingestion batch should cover, in id order."""
        query = "SELECT * FROM feeds WHERE 1=1"
        params: list = []
        if exclude_test_sources:
            query += " AND is_test_source = 0"
        if feed_ids is not None:
            if not feed_ids:
                return []
            placeholders = ",".join("?" for _ in feed_ids)
            query += f" AND id IN ({placeholders})"
            params.extend(feed_ids)
        query += " ORDER BY id"
        return [_row_to_feed(r) for r in self._fetchall(query, params)]

    def count_feeds(self) -> int:
        row = self._fetchone("SELECT COUNT(*) as cnt FROM feeds")
        return row["cnt"] if row else 0

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed and its items (cascade). Returns True if deleted."""
        with self.transaction():
            cursor = self.conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
        return cursor.rowcount > 0

    def delete_all_feeds(self) -> int:
        """Delete every feed (and, by cascade, every item)."""
        with self.transaction():
            cursor = self.conn.execute("DELETE FROM feeds")
        return cursor.rowcount

    def record_fetch_error(self, feed_id: int, message: str, at: datetime) -> None:
        """Store a failed fetch. last_success_at is left untouched."""
        with self.transaction():
            self.conn.execute(
                "UPDATE feeds SET last_error = ?, last_error_at = ? WHERE id = ?",
                (message, _dt_to_str(at), feed_id),
            )

    def record_fetch_success(
        self,
        feed_id: int,
        at: datetime,
        title: str | None = None,
        description: str | None = None,
    ) -> None:
        """Store a successful fetch and clear the error fields.

        Title and description are only overwritten when given.
        """
        with self.transaction():
            self.conn.execute(
                """UPDATE feeds SET last_success_at = ?, last_error = NULL,
                   last_error_at = NULL,
                   title = COALESCE(NULLIF(?, ''), title),
                   description = COALESCE(NULLIF(?, ''), description)
                   WHERE id = ?""",
                (_dt_to_str(at), title, description, feed_id),
            )

    def get_last_success_feed(self) -> Feed | None:
        """The feed with the most recent successful fetch."""
        row = self._fetchone(
            """SELECT * FROM feeds WHERE last_success_at IS NOT NULL
               ORDER BY last_success_at DESC LIMIT 1"""
        )
        return _row_to_feed(row) if row else None

    def get_last_error_feed(self) -> Feed | None:
        """The feed with the most recent failed fetch."""
        row = self._fetchone(
            """SELECT * FROM feeds WHERE last_error_at IS NOT NULL
               ORDER BY last_error_at DESC LIMIT 1"""
        )
        return _row_to_feed(row) if row else None

    # --- Item operations ---

    def upsert_item(self, feed_id: int, parsed: ParsedItem, at: datetime) -> bool:
        """Insert or refresh an item keyed by (feed_id, guid).

        Returns True if a new row was created, False if an existing one matched.
        """
        with self.transaction():
            row = self.conn.execute(
                "SELECT id FROM items WHERE feed_id = ? AND guid = ?",
                (feed_id, parsed.guid),
            ).fetchone()
            if row is None:
                self.conn.execute(
                    """INSERT INTO items (feed_id, guid, title, link, author,
                       description, content, published_at, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        feed_id,
                        parsed.guid,
                        parsed.title,
                        parsed.link,
                        parsed.author,
                        parsed.description,
                        parsed.content,
                        _dt_to_str(parsed.published_at),
                        _dt_to_str(at),
                        _dt_to_str(at),
                    ),
                )
                return True

            self.conn.execute(
                """UPDATE items SET title = ?, link = ?, author = ?, description = ?,
                   content = ?, published_at = COALESCE(?, published_at),
                   updated_at = ?
                   WHERE id = ?""",
                (
                    parsed.title,
                    parsed.link,
                    parsed.author,
                    parsed.description,
                    parsed.content,
                    _dt_to_str(parsed.published_at),
                    _dt_to_str(at),
                    row["id"],
                ),
            )
            return False

    def get_item_by_id(self, item_id: int) -> Item | None:
        row = self._fetchone("SELECT * FROM items WHERE id = ?", (item_id,))
        return _row_to_item(row) if row else None

    def get_items(
        self,
        feed_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Item]:
        """Get items, newest first, optionally for a single feed."""
        query = "SELECT * FROM items"
        params: list = []
        if feed_id is not None:
            query += " WHERE feed_id = ?"
            params.append(feed_id)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        return [_row_to_item(r) for r in self._fetchall(query, params)]

    def count_items(self, feed_id: int | None = None) -> int:
        if feed_id is None:
            row = self._fetchone("SELECT COUNT(*) as cnt FROM items")
        else:
            row = self._fetchone(
                "SELECT COUNT(*) as cnt FROM items WHERE feed_id = ?", (feed_id,)
            )
        return row["cnt"] if row else 0

    def delete_item(self, item_id: int) -> bool:
        with self.transaction():
            cursor = self.conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
        return cursor.rowcount > 0

    def delete_all_items(self) -> int:
        with self.transaction():
            cursor = self.conn.execute("DELETE FROM items")
        return cursor.rowcount


# --- Helper functions ---


def _dt_to_str(dt: datetime | None) -> str | None:
    """Convert datetime to ISO string for storage."""
    return dt.isoformat() if dt else None


def _str_to_dt(s: str | None) -> datetime | None:
    """Convert stored ISO string back to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


def _row_to_feed(row: sqlite3.Row) -> Feed:
    """Convert a database row to a Feed dataclass."""
    return Feed(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        description=row["description"],
        last_success_at=_str_to_dt(row["last_success_at"]),
        last_error=row["last_error"],
        last_error_at=_str_to_dt(row["last_error_at"]),
        is_test_source=bool(row["is_test_source"]),
        created_at=_str_to_dt(row["created_at"]),
    )


def _row_to_item(row: sqlite3.Row) -> Item:
    """Convert a database row to an Item dataclass."""
    return Item(
        id=row["id"],
        feed_id=row["feed_id"],
        guid=row["guid"],
        title=row["title"],
        link=row["link"],
        author=row["author"],
        description=row["description"],
        content=row["content"],
        published_at=_str_to_dt(row["published_at"]),
        created_at=_str_to_dt(row["created_at"]),
        updated_at=_str_to_dt(row["updated_at"]),
    )
