"""Database layer (primary store) for the listing resolver."""

import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Optional

from config import DB_PATH
from errors import DuplicateListing, PrimaryUnavailable
from models import ListingRecord

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "image", "approximate")


def get_conn(db_path: str = DB_PATH) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=15)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_db(db_path: str = DB_PATH):
    conn = get_conn(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS listings (
                id              TEXT PRIMARY KEY,
                url             TEXT NOT NULL UNIQUE,
                title           TEXT NOT NULL,
                image           TEXT,
                views           INTEGER NOT NULL DEFAULT 0,
                approximate     INTEGER NOT NULL DEFAULT 0,
                created_at      TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_listings_top ON listings(views DESC, created_at DESC);
        """)
        conn.commit()
    finally:
        conn.close()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def row_to_record(row: sqlite3.Row) -> ListingRecord:
    return ListingRecord(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        image=row["image"],
        views=row["views"],
        created_at=datetime.fromisoformat(row["created_at"]),
        approximate=bool(row["approximate"]),
    )


def insert_listing(conn: sqlite3.Connection, url: str, title: str,
                   image: Optional[str] = None, approximate: bool = False) -> ListingRecord:
    """Insert a new listing. Raises DuplicateListing if the URL is taken."""
    record_id = uuid.uuid4().hex
    try:
        conn.execute("""
            INSERT INTO listings (id, url, title, image, views, approximate, created_at)
            VALUES (?, ?, ?, ?, 0, ?, ?)
        """, (record_id, url, title, image, int(approximate), _now()))
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise DuplicateListing(url) from e
    return get_listing(conn, record_id)


def get_listing(conn: sqlite3.Connection, record_id: str) -> Optional[ListingRecord]:
    row = conn.execute("SELECT * FROM listings WHERE id = ?", (record_id,)).fetchone()
    return row_to_record(row) if row else None


def get_listing_by_url(conn: sqlite3.Connection, url: str) -> Optional[ListingRecord]:
    row = conn.execute("SELECT * FROM listings WHERE url = ?", (url,)).fetchone()
    return row_to_record(row) if row else None


def increment_views(conn: sqlite3.Connection, record_id: str) -> Optional[ListingRecord]:
    """Atomic views + 1; the write lock is held until the re-read commits."""
    cursor = conn.execute("UPDATE listings SET views = views + 1 WHERE id = ?", (record_id,))
    if cursor.rowcount == 0:
        conn.rollback()
        return None
    record = get_listing(conn, record_id)
    conn.commit()
    return record


def update_listing(conn: sqlite3.Connection, record_id: str, fields: dict) -> Optional[ListingRecord]:
    updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    if "approximate" in updates:
        updates["approximate"] = int(bool(updates["approximate"]))
    if updates:
        assignments = ", ".join(f"{k} = ?" for k in updates)
        conn.execute(f"UPDATE listings SET {assignments} WHERE id = ?", (*updates.values(), record_id))
        conn.commit()
    return get_listing(conn, record_id)


def get_top_listings(conn: sqlite3.Connection, limit: int, offset: int) -> tuple[list[ListingRecord], int]:
    rows = conn.execute(
        "SELECT * FROM listings ORDER BY views DESC, created_at DESC LIMIT ? OFFSET ?",
        (limit, offset),
    ).fetchall()
    total = conn.execute("SELECT COUNT(*) as c FROM listings").fetchone()["c"]
    return [row_to_record(row) for row in rows], total


class SqlitePrimary:
    """Primary record store backed by a SQLite file.

    Every operation opens its own connection so callers on different threads
    never share one. Any sqlite failure other than a uniqueness violation is
    reported as PrimaryUnavailable.
    """

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def _conn(self) -> sqlite3.Connection:
        if not self._schema_ready:
            with self._schema_lock:
                if not self._schema_ready:
                    init_db(self.db_path)
                    self._schema_ready = True
        return get_conn(self.db_path)

    def _run(self, fn, *args):
        try:
            conn = self._conn()
        except sqlite3.Error as e:
            raise PrimaryUnavailable(f"Cannot open {self.db_path}: {e}") from e
        try:
            return fn(conn, *args)
        except sqlite3.Error as e:
            raise PrimaryUnavailable(f"{fn.__name__} failed: {e}") from e
        finally:
            conn.close()

    def is_reachable(self) -> bool:
        try:
            self._run(lambda conn: conn.execute("SELECT 1").fetchone())
        except PrimaryUnavailable as e:
            logger.debug(f"Primary store unreachable: {e}")
            return False
        return True

    def find_by_url(self, url: str) -> Optional[ListingRecord]:
        return self._run(get_listing_by_url, url)

    def find_by_id(self, record_id: str) -> Optional[ListingRecord]:
        return self._run(get_listing, record_id)

    def create(self, url: str, title: str, image: Optional[str] = None,
               approximate: bool = False) -> ListingRecord:
        return self._run(insert_listing, url, title, image, approximate)

    def increment_view_and_get(self, record_id: str) -> Optional[ListingRecord]:
        return self._run(increment_views, record_id)

    def update(self, record_id: str, fields: dict) -> Optional[ListingRecord]:
        return self._run(update_listing, record_id, fields)

    def list_top_by_views(self, limit: int, offset: int) -> tuple[list[ListingRecord], int]:
        return self._run(get_top_listings, limit, offset)
