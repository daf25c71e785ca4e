"""Listing resolution: normalize -> cache -> fetch -> extract -> persist.

Shared between the API, the CLI and the scheduler.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Optional

from cache import ParseCache
from config import DB_PATH, LIST_DEFAULT_LIMIT, LIST_MAX_LIMIT, PLACEHOLDER_TITLE
from db import SqlitePrimary
from errors import DuplicateListing, FetchError, ListingNotFound
from extractor import extract
from fetcher import Fetcher
from models import ExtractionResult, ListingPage, RefreshResult, ResolveResult
from store import MemoryMirror, ResilientRecordStore
from urls import normalize_url

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            slot = self._locks.setdefault(key, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ListingResolver:
    def __init__(self, store: ResilientRecordStore, fetcher: Fetcher,
                 parse_cache: ParseCache,
                 extract_fn: Callable[[str, str], ExtractionResult] = extract,
                 normalize_fn: Callable[[str], str] = normalize_url,
                 placeholder_title: str = PLACEHOLDER_TITLE):
        self.store = store
        self.fetcher = fetcher
        self.parse_cache = parse_cache
        self.extract = extract_fn
        self.normalize = normalize_fn
        self.placeholder_title = placeholder_title
        self._url_locks = KeyedLocks()

    def _fetch_and_extract(self, url: str) -> ExtractionResult:
        logger.debug(f"[{url}] FETCHING")
        try:
            html = self.fetcher.fetch(url)
        except FetchError as e:
            return ExtractionResult.failure(e.reason, [f"{e.reason}: {e}"])
        logger.debug(f"[{url}] EXTRACTING")
        return self.extract(html, url)

    def _persist(self, url: str, title: str, image: Optional[str],
                 approximate: bool, warnings: list[str]) -> ResolveResult:
        logger.debug(f"[{url}] PERSISTING approximate={approximate}")
        try:
            record = self.store.create(url, title, image, approximate)
        except DuplicateListing:
            winner = self.store.find_by_url(url)
            if winner is None:
                raise
            logger.info(f"Lost create race for {url}, returning {winner.id}")
            return ResolveResult(record=winner, degraded=winner.approximate,
                                 warnings=warnings, created=False)
        return ResolveResult(record=record, degraded=approximate, warnings=warnings, created=True)

    def resolve(self, url_string: str) -> ResolveResult:
        """Resolve a listing URL into a record.

        Only InvalidURL / UnsupportedDomain escape; fetch and parse failures
        produce a placeholder record flagged as degraded.
        """
        url = self.normalize(url_string)

        with self._url_locks.hold(url):
            existing = self.store.find_by_url(url)
            if existing:
                logger.debug(f"[{url}] existing record {existing.id}")
                return ResolveResult(record=existing, degraded=existing.approximate, created=False)

            cached = self.parse_cache.get(url)
            if cached:
                logger.debug(f"[{url}] CACHE_CHECK hit")
                return self._persist(url, cached.title, cached.image, approximate=False, warnings=[])

            result = self._fetch_and_extract(url)
            if result.is_ok:
                self.parse_cache.put(url, result)
                return self._persist(url, result.title, result.image, approximate=False, warnings=[])

            logger.warning(f"Degraded resolution for {url}: {result.reason} {result.warnings}")
            return self._persist(url, self.placeholder_title, None, approximate=True,
                                 warnings=result.warnings)

    def get_and_touch(self, record_id: str):
        record = self.store.increment_view_and_get(record_id)
        if record is None:
            raise ListingNotFound(record_id)
        return record

    def list_top(self, limit: Optional[int] = None, offset: Optional[int] = None) -> ListingPage:
        limit = LIST_DEFAULT_LIMIT if limit is None else limit
        limit = max(1, min(limit, LIST_MAX_LIMIT))
        offset = max(0, offset or 0)
        records, total = self.store.list_top_by_views(limit, offset)
        return ListingPage(records=records, total=total, limit=limit, offset=offset)

    def refresh(self, record_id: str) -> RefreshResult:
        """Re-fetch a listing and apply only changes that add information."""
        record = self.store.find_by_id(record_id)
        if record is None:
            raise ListingNotFound(record_id)

        with self._url_locks.hold(record.url):
            result = self._fetch_and_extract(record.url)
            if not result.is_ok:
                logger.warning(f"Refresh of {record_id} degraded: {result.reason}")
                return RefreshResult(record=record, refreshed=False, degraded=True,
                                     warnings=result.warnings)
            self.parse_cache.put(record.url, result)

            fields = {}
            if result.title and result.title != record.title:
                fields["title"] = result.title
            if result.image and result.image != record.image:
                fields["image"] = result.image
            if record.approximate:
                fields["approximate"] = False
            if not fields:
                return RefreshResult(record=record, refreshed=False)

            updated = self.store.update(record.id, fields)
            if updated is None:
                raise ListingNotFound(record_id)
            logger.info(f"Refreshed {record_id}: {sorted(fields)}")
            return RefreshResult(record=updated, refreshed=True)


def create_resolver(db_path: str = DB_PATH) -> ListingResolver:
    """Wire the default component graph."""
    store = ResilientRecordStore(SqlitePrimary(db_path), MemoryMirror())
    return ListingResolver(store=store, fetcher=Fetcher(), parse_cache=ParseCache())
