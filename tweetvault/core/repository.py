"""Bookmark Repository for TweetVault.

Owns the persisted Bookmark and MediaItem rows. Backed by SQLite: every
public call runs in its own transaction on a fresh connection and is
committed (durably flushed) before returning. Store errors propagate to the
caller.

The process is assumed to be the single writer of the database file.
"""

import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from tweetvault.core.bookmark import (
    Bookmark,
    BookmarkInput,
    BookmarkStatus,
    MediaItem,
    MediaItemResult,
    MediaItemStatus,
    MediaKind,
    MediaType,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS bookmarks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tweet_id TEXT UNIQUE NOT NULL,
    url TEXT NOT NULL,
    author_id TEXT NOT NULL,
    author_name TEXT,
    author_handle TEXT,
    text TEXT,
    media_type TEXT NOT NULL DEFAULT 'none',
    media_urls TEXT NOT NULL DEFAULT '[]',
    media_paths TEXT NOT NULL DEFAULT '[]',
    media_download_failed INTEGER NOT NULL DEFAULT 0,
    quoted_tweet_url TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    bookmark_time TEXT,
    raw_html TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_bookmarks_status ON bookmarks(status);
CREATE INDEX IF NOT EXISTS idx_bookmarks_created_at ON bookmarks(created_at);

CREATE TABLE IF NOT EXISTS media_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bookmark_id INTEGER NOT NULL,
    kind TEXT NOT NULL,
    source_url TEXT NOT NULL,
    sequence INTEGER NOT NULL,
    status TEXT NOT NULL,
    local_path TEXT,
    error_message TEXT,
    retry_count INTEGER NOT NULL DEFAULT 0,
    file_size INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (bookmark_id) REFERENCES bookmarks(id) ON DELETE CASCADE,
    UNIQUE (bookmark_id, sequence)
);

CREATE INDEX IF NOT EXISTS idx_media_items_bookmark_id ON media_items(bookmark_id);
"""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class BookmarkRepository:
    """SQLite-backed store for bookmarks and their media items.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the repository and create the schema if needed.

        Args:
            db_path: Path to the database file. Parent directories are
                created on first use.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
        logger.info("Bookmark store ready: %s", self.db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection wrapped in a single transaction.

        Commits on success, rolls back and re-raises on any error.
        """
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ── Bookmarks ────────────────────────────────────────────────────

    def upsert(self, data: BookmarkInput) -> Bookmark:
        """Create a bookmark, or reset an existing one for re-acquisition.

        A new tweet id is inserted with status PENDING. An existing tweet id
        gets its content fields overwritten, its media items and media paths
        cleared, the failure flag reset and status set back to PENDING.

        Args:
            data: Validated bookmark payload.

        Returns:
            The current row after the write.
        """
        now = utc_now_iso()
        values = {
            "tweet_id": data.tweet_id,
            "url": data.url,
            "author_id": data.author_id,
            "author_name": data.author_name,
            "author_handle": data.author_handle,
            "text": data.text,
            "media_type": data.media_type.value,
            "media_urls": json.dumps(list(data.media_urls)),
            "quoted_tweet_url": data.quoted_tweet_url,
            "bookmark_time": data.bookmark_time or now,
            "raw_html": data.raw_html,
            "status": BookmarkStatus.PENDING.value,
            "now": now,
        }

        with self._connect() as conn:
            existing = conn.execute(
                "SELECT id FROM bookmarks WHERE tweet_id = ?", (data.tweet_id,)
            ).fetchone()

            if existing is None:
                cursor = conn.execute(
                    """
                    INSERT INTO bookmarks (
                        tweet_id, url, author_id, author_name, author_handle,
                        text, media_type, media_urls, media_paths,
                        media_download_failed, quoted_tweet_url, status,
                        bookmark_time, raw_html, created_at, updated_at
                    ) VALUES (
                        :tweet_id, :url, :author_id, :author_name, :author_handle,
                        :text, :media_type, :media_urls, '[]',
                        0, :quoted_tweet_url, :status,
                        :bookmark_time, :raw_html, :now, :now
                    )
                    """,
                    values,
                )
                bookmark_id = cursor.lastrowid
                logger.debug("Inserted bookmark %s (id=%d)", data.tweet_id, bookmark_id)
            else:
                bookmark_id = existing["id"]
                conn.execute(
                    """
                    UPDATE bookmarks SET
                        url = :url,
                        author_id = :author_id,
                        author_name = :author_name,
                        author_handle = :author_handle,
                        text = :text,
                        media_type = :media_type,
                        media_urls = :media_urls,
                        media_paths = '[]',
                        media_download_failed = 0,
                        quoted_tweet_url = :quoted_tweet_url,
                        status = :status,
                        bookmark_time = :bookmark_time,
                        raw_html = :raw_html,
                        updated_at = :now
                    WHERE id = :id
                    """,
                    {**values, "id": bookmark_id},
                )
                conn.execute(
                    "DELETE FROM media_items WHERE bookmark_id = ?", (bookmark_id,)
                )
                logger.debug("Reset bookmark %s (id=%d)", data.tweet_id, bookmark_id)

            row = conn.execute(
                "SELECT * FROM bookmarks WHERE id = ?", (bookmark_id,)
            ).fetchone()

        return _row_to_bookmark(row)

    def get(self, bookmark_id: int) -> Bookmark | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM bookmarks WHERE id = ?", (bookmark_id,)
            ).fetchone()
        return _row_to_bookmark(row) if row else None

    def get_by_tweet_id(self, tweet_id: str) -> Bookmark | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM bookmarks WHERE tweet_id = ?", (tweet_id,)
            ).fetchone()
        return _row_to_bookmark(row) if row else None

    def list_bookmarks(self, limit: int = 100, offset: int = 0) -> list[Bookmark]:
        """List bookmarks, newest created first.

        Args:
            limit: Maximum number of rows.
            offset: Number of rows to skip.
        """
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM bookmarks
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()
        return [_row_to_bookmark(row) for row in rows]

    def list_by_status(self, status: BookmarkStatus, limit: int = 100) -> list[Bookmark]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM bookmarks
                WHERE status = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (status.value, limit),
            ).fetchall()
        return [_row_to_bookmark(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM bookmarks").fetchone()
        return int(row["n"])

    def count_created_on(self, day: date) -> int:
        """Count bookmarks whose creation time falls on a local calendar day.

        Args:
            day: Local date to count.

        Returns:
            Number of bookmarks created on that day.
        """
        start = datetime(day.year, day.month, day.day).astimezone()
        end = start.replace(hour=23, minute=59, second=59, microsecond=999999)
        with self._connect() as conn:
            rows = conn.execute("SELECT created_at FROM bookmarks").fetchall()

        total = 0
        for row in rows:
            created = datetime.fromisoformat(row["created_at"])
            if start <= created <= end:
                total += 1
        return total

    def delete(self, bookmark_id: int) -> bool:
        """Delete a bookmark and all of its media items.

        Returns:
            True if a bookmark row was removed.
        """
        with self._connect() as conn:
            conn.execute("DELETE FROM media_items WHERE bookmark_id = ?", (bookmark_id,))
            cursor = conn.execute("DELETE FROM bookmarks WHERE id = ?", (bookmark_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted bookmark id=%d", bookmark_id)
        return deleted

    def set_status(
        self,
        bookmark_id: int,
        status: BookmarkStatus,
        media_download_failed: bool | None = None,
    ) -> None:
        """Update lifecycle status and, when given, the failure flag.

        Args:
            bookmark_id: Bookmark row id.
            status: New lifecycle status.
            media_download_failed: New failure flag; left unchanged if None.
        """
        with self._connect() as conn:
            if media_download_failed is None:
                conn.execute(
                    "UPDATE bookmarks SET status = ?, updated_at = ? WHERE id = ?",
                    (status.value, utc_now_iso(), bookmark_id),
                )
            else:
                conn.execute(
                    """
                    UPDATE bookmarks
                    SET status = ?, media_download_failed = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (status.value, int(media_download_failed), utc_now_iso(), bookmark_id),
                )

    # ── Media items ──────────────────────────────────────────────────

    def replace_media_items(
        self, bookmark_id: int, items: Sequence[MediaItemResult]
    ) -> list[MediaItem]:
        """Atomically swap the media item set of a bookmark.

        Existing items are deleted and the supplied ones inserted with their
        own sequence numbers. The bookmark's ``media_paths`` cache is
        rewritten from the completed items in the same transaction.

        Args:
            bookmark_id: Owning bookmark id.
            items: Downloader results to persist.

        Returns:
            The stored items ordered by sequence.
        """
        now = utc_now_iso()
        ordered = sorted(items, key=lambda item: item.sequence)
        media_paths = [item.local_path for item in ordered if item.succeeded and item.local_path]

        with self._connect() as conn:
            conn.execute("DELETE FROM media_items WHERE bookmark_id = ?", (bookmark_id,))
            conn.executemany(
                """
                INSERT INTO media_items (
                    bookmark_id, kind, source_url, sequence, status, local_path,
                    error_message, retry_count, file_size, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        bookmark_id,
                        item.kind.value,
                        item.source_url,
                        item.sequence,
                        item.status.value,
                        item.local_path,
                        item.error,
                        item.retry_count,
                        item.file_size,
                        now,
                        now,
                    )
                    for item in ordered
                ],
            )
            conn.execute(
                "UPDATE bookmarks SET media_paths = ?, updated_at = ? WHERE id = ?",
                (json.dumps(media_paths), now, bookmark_id),
            )
            rows = conn.execute(
                "SELECT * FROM media_items WHERE bookmark_id = ? ORDER BY sequence",
                (bookmark_id,),
            ).fetchall()

        return [_row_to_media_item(row) for row in rows]

    def get_media_items(self, bookmark_id: int) -> list[MediaItem]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM media_items WHERE bookmark_id = ? ORDER BY sequence",
                (bookmark_id,),
            ).fetchall()
        return [_row_to_media_item(row) for row in rows]

    def get_media_items_batch(self, bookmark_ids: Iterable[int]) -> dict[int, list[MediaItem]]:
        """Fetch media items for many bookmarks in one query.

        Args:
            bookmark_ids: Bookmark ids to look up.

        Returns:
            Mapping of every requested id to its items ordered by sequence
            (an empty list when it has none).
        """
        ids = list(dict.fromkeys(bookmark_ids))
        result: dict[int, list[MediaItem]] = {bookmark_id: [] for bookmark_id in ids}
        if not ids:
            return result

        placeholders = ",".join("?" for _ in ids)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM media_items
                WHERE bookmark_id IN ({placeholders})
                ORDER BY bookmark_id, sequence
                """,
                ids,
            ).fetchall()

        for row in rows:
            result[row["bookmark_id"]].append(_row_to_media_item(row))
        return result


def _row_to_bookmark(row: sqlite3.Row) -> Bookmark:
    return Bookmark(
        id=row["id"],
        tweet_id=row["tweet_id"],
        url=row["url"],
        author_id=row["author_id"],
        author_name=row["author_name"] or "",
        author_handle=row["author_handle"] or "",
        text=row["text"] or "",
        quoted_tweet_url=row["quoted_tweet_url"],
        bookmark_time=row["bookmark_time"] or "",
        media_type=MediaType(row["media_type"]),
        media_urls=_load_list(row["media_urls"]),
        media_paths=_load_list(row["media_paths"]),
        media_download_failed=bool(row["media_download_failed"]),
        status=BookmarkStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_media_item(row: sqlite3.Row) -> MediaItem:
    return MediaItem(
        id=row["id"],
        bookmark_id=row["bookmark_id"],
        kind=MediaKind(row["kind"]),
        source_url=row["source_url"],
        sequence=row["sequence"],
        status=MediaItemStatus(row["status"]),
        local_path=row["local_path"],
        error_message=row["error_message"],
        retry_count=row["retry_count"],
        file_size=row["file_size"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _load_list(raw: Any) -> list[str]:
    if not raw:
        return []
    value = json.loads(raw)
    return list(value) if isinstance(value, list) else []
