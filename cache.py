"""In-process parse cache.

Successful extractions are kept for PARSE_CACHE_TTL_SECONDS so repeated
resolutions of the same URL skip the network. Entries are visible only while
``now < expires_at``; expired entries drop out on the next touch or on
``prune()``.
"""

import logging
import threading
import time
from typing import Callable, Optional

from cachetools import TTLCache

from config import PARSE_CACHE_MAX_ENTRIES, PARSE_CACHE_TTL_SECONDS
from models import ExtractionResult

logger = logging.getLogger(__name__)


class ParseCache:
    """Successful extraction results keyed by normalized URL."""

    def __init__(self, ttl_seconds: float = PARSE_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic,
                 maxsize: int = PARSE_CACHE_MAX_ENTRIES):
        self._cache: TTLCache[str, ExtractionResult] = TTLCache(
            maxsize=maxsize, ttl=ttl_seconds, timer=clock)
        self._lock = threading.Lock()

    def get(self, url: str) -> Optional[ExtractionResult]:
        with self._lock:
            return self._cache.get(url)

    def put(self, url: str, result: ExtractionResult) -> bool:
        # Degraded results stay out so the next call retries the source.
        if not result.is_ok:
            return False
        with self._lock:
            self._cache[url] = result
        return True

    def prune(self) -> int:
        """Remove every expired entry. Returns how many were dropped."""
        with self._lock:
            expired = self._cache.expire()
        if expired:
            logger.debug(f"Parse cache dropped {len(expired)} expired entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
