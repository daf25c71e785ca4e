"""Record store facade: primary store first, in-memory mirror as fallback."""

import logging
import threading
import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from cachetools import TTLCache

from config import MIRROR_MAX_ENTRIES, MIRROR_TTL_SECONDS
from errors import DuplicateListing, PrimaryUnavailable
from models import ListingRecord

logger = logging.getLogger(__name__)

MIRROR_ID_PREFIX = "mirror:"
MIRROR_FIELDS = ("title", "image", "approximate")


def is_mirror_id(record_id: str) -> bool:
    return isinstance(record_id, str) and record_id.startswith(MIRROR_ID_PREFIX)


def top_sort_key(record: ListingRecord):
    created = record.created_at.timestamp() if record.created_at else 0.0
    return (-record.views, -created)


class MemoryMirror:
    """Time-bounded in-memory stand-in for the primary store.

    Records are indexed by id and by normalized URL. Every read or write
    re-assigns the record, which slides its expiry forward; an expired record
    disappears from both indexes at once. Nothing here survives a restart.
    """

    def __init__(self, ttl_seconds: float = MIRROR_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic,
                 maxsize: int = MIRROR_MAX_ENTRIES):
        self._lock = threading.RLock()
        self._by_id: TTLCache[str, ListingRecord] = TTLCache(
            maxsize=maxsize, ttl=ttl_seconds, timer=clock)
        self._by_url: dict[str, str] = {}

    def _expire(self) -> int:
        expired = self._by_id.expire()
        for record_id, record in expired:
            if self._by_url.get(record.url) == record_id:
                del self._by_url[record.url]
        return len(expired)

    def _touch(self, record_id: str) -> Optional[ListingRecord]:
        self._expire()
        record = self._by_id.get(record_id)
        if record is not None:
            self._by_id[record_id] = record
        return record

    def _store(self, record: ListingRecord) -> ListingRecord:
        self._expire()
        self._by_id[record.id] = record
        self._by_url[record.url] = record.id
        return replace(record)

    def find_by_id(self, record_id: str) -> Optional[ListingRecord]:
        with self._lock:
            record = self._touch(record_id)
            return replace(record) if record else None

    def find_by_url(self, url: str) -> Optional[ListingRecord]:
        with self._lock:
            record_id = self._by_url.get(url)
            if record_id is None:
                return None
            record = self._touch(record_id)
            if record is None:
                # Dropped by a size eviction or an implicit expiry on insert.
                self._by_url.pop(url, None)
                return None
            return replace(record)

    def create(self, url: str, title: str, image: Optional[str] = None,
               approximate: bool = False) -> ListingRecord:
        with self._lock:
            if self.find_by_url(url) is not None:
                raise DuplicateListing(url)
            record = ListingRecord(
                id=f"{MIRROR_ID_PREFIX}{uuid.uuid4().hex}",
                url=url,
                title=title,
                image=image,
                views=0,
                created_at=datetime.now(timezone.utc),
                approximate=approximate,
            )
            logger.info(f"Created {record.id} in mirror for {url}")
            return self._store(record)

    def remember(self, record: ListingRecord) -> ListingRecord:
        """Keep a copy of a primary record so its id stays readable during an outage."""
        with self._lock:
            return self._store(replace(record))

    def increment_view_and_get(self, record_id: str) -> Optional[ListingRecord]:
        with self._lock:
            record = self._by_id.get(record_id)
            if record is None:
                return None
            return self._store(replace(record, views=record.views + 1))

    def update(self, record_id: str, fields: dict) -> Optional[ListingRecord]:
        with self._lock:
            record = self._by_id.get(record_id)
            if record is None:
                return None
            changes = {k: v for k, v in fields.items() if k in MIRROR_FIELDS}
            return self._store(replace(record, **changes))

    def list_top_by_views(self, limit: int, offset: int) -> tuple[list[ListingRecord], int]:
        with self._lock:
            self._expire()
            records = sorted(self._by_id.values(), key=top_sort_key)
            return [replace(r) for r in records[offset:offset + limit]], len(records)

    def prune(self) -> int:
        """Drop expired records from both indexes. Returns how many went."""
        with self._lock:
            return self._expire()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)


class ResilientRecordStore:
    """Same operations whether or not the primary store is up.

    Reachability is checked before each call; when the primary is down, or
    fails mid-call, the mirror answers instead. Mirror-created ids are always
    served by the mirror.
    """

    def __init__(self, primary, mirror: MemoryMirror):
        self.primary = primary
        self.mirror = mirror

    def is_primary_reachable(self) -> bool:
        return self.primary.is_reachable()

    def _call(self, op: str, primary_fn: Callable, mirror_fn: Callable):
        if self.primary.is_reachable():
            try:
                return primary_fn()
            except PrimaryUnavailable as e:
                logger.warning(f"Primary store failed during {op}, using mirror: {e}")
        else:
            logger.warning(f"Primary store unreachable, serving {op} from mirror")
        return mirror_fn()

    def _remember(self, record: Optional[ListingRecord]) -> Optional[ListingRecord]:
        if record is not None:
            self.mirror.remember(record)
        return record

    def find_by_url(self, url: str) -> Optional[ListingRecord]:
        def from_primary():
            record = self.primary.find_by_url(url)
            if record is None:
                # May have been created in the mirror during an outage.
                return self.mirror.find_by_url(url)
            return self._remember(record)

        return self._call("find_by_url", from_primary, lambda: self.mirror.find_by_url(url))

    def find_by_id(self, record_id: str) -> Optional[ListingRecord]:
        if is_mirror_id(record_id):
            return self.mirror.find_by_id(record_id)
        return self._call(
            "find_by_id",
            lambda: self._remember(self.primary.find_by_id(record_id)),
            lambda: self.mirror.find_by_id(record_id),
        )

    def create(self, url: str, title: str, image: Optional[str] = None,
               approximate: bool = False) -> ListingRecord:
        return self._call(
            "create",
            lambda: self._remember(self.primary.create(url, title, image, approximate)),
            lambda: self.mirror.create(url, title, image, approximate),
        )

    def increment_view_and_get(self, record_id: str) -> Optional[ListingRecord]:
        if is_mirror_id(record_id):
            return self.mirror.increment_view_and_get(record_id)
        return self._call(
            "increment_view_and_get",
            lambda: self._remember(self.primary.increment_view_and_get(record_id)),
            lambda: self.mirror.increment_view_and_get(record_id),
        )

    def update(self, record_id: str, fields: dict) -> Optional[ListingRecord]:
        if is_mirror_id(record_id):
            return self.mirror.update(record_id, fields)
        return self._call(
            "update",
            lambda: self._remember(self.primary.update(record_id, fields)),
            lambda: self.mirror.update(record_id, fields),
        )

    def list_top_by_views(self, limit: int, offset: int) -> tuple[list[ListingRecord], int]:
        return self._call(
            "list_top_by_views",
            lambda: self.primary.list_top_by_views(limit, offset),
            lambda: self.mirror.list_top_by_views(limit, offset),
        )
