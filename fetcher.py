"""HTTP fetching with header rotation and exponential backoff."""

import logging
import random
import socket
import time
from typing import Callable, Optional

import requests
from urllib3.exceptions import MaxRetryError, NameResolutionError

from config import (
    FETCH_BACKOFF_BASE_MS,
    FETCH_MAX_REDIRECTS,
    FETCH_MAX_RETRIES,
    FETCH_TIMEOUT_SECONDS,
    RETRYABLE_STATUSES,
    SOURCE_HOMEPAGE,
    USER_AGENTS,
)
from errors import FetchExhausted, FetchFatal

logger = logging.getLogger(__name__)


def backoff_delay_ms(attempt: int, base_ms: float = FETCH_BACKOFF_BASE_MS,
                     rng: Optional[random.Random] = None) -> float:
    """Delay after 0-indexed ``attempt``: base * (2^(attempt+1) - 1) + jitter in [0, base]."""
    rng = rng or random
    return base_ms * (2 ** (attempt + 1) - 1) + rng.uniform(0, base_ms)


def _is_dns_failure(exc: BaseException) -> bool:
    """Walk the requests -> urllib3 -> socket chain looking for a resolver error."""
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, (NameResolutionError, socket.gaierror)):
            return True
        if isinstance(current, MaxRetryError):
            pending.append(current.reason)
        pending.extend(arg for arg in getattr(current, "args", ()) if isinstance(arg, BaseException))
        pending.append(current.__cause__)
        pending.append(current.__context__)
    return False


class _RetryableFailure(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


class Fetcher:
    def __init__(self, session: Optional[requests.Session] = None,
                 timeout: float = FETCH_TIMEOUT_SECONDS,
                 max_retries: int = FETCH_MAX_RETRIES,
                 backoff_base_ms: float = FETCH_BACKOFF_BASE_MS,
                 max_redirects: int = FETCH_MAX_REDIRECTS,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        self.session = session or requests.Session()
        self.session.max_redirects = max_redirects
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base_ms = backoff_base_ms
        self.sleep = sleep
        self.rng = rng or random.Random()

    def _build_headers(self) -> dict:
        return {
            "User-Agent": self.rng.choice(USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
            "Accept-Language": "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7",
            "Referer": SOURCE_HOMEPAGE,
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Upgrade-Insecure-Requests": "1",
        }

    def _attempt(self, url: str) -> str:
        try:
            resp = self.session.get(url, headers=self._build_headers(),
                                    timeout=self.timeout, allow_redirects=True)
        except requests.Timeout as e:
            raise _RetryableFailure(f"timeout: {e}", cause=e) from e
        except requests.TooManyRedirects as e:
            raise FetchFatal(url, f"Too many redirects for {url}", last_cause=e) from e
        except requests.RequestException as e:
            if _is_dns_failure(e):
                raise _RetryableFailure(f"DNS resolution failed: {e}", cause=e) from e
            raise FetchFatal(url, f"Request failed for {url}: {e}", last_cause=e) from e

        status = resp.status_code
        if 200 <= status < 400:
            return resp.text
        if status in RETRYABLE_STATUSES:
            raise _RetryableFailure(f"HTTP {status}", status_code=status)
        raise FetchFatal(url, f"Got {status} for {url}", status_code=status)

    def fetch(self, url: str) -> str:
        """Fetch ``url`` and return its HTML.

        Raises FetchFatal straight away for non-retryable conditions and
        FetchExhausted once the retry budget is spent.
        """
        attempts = self.max_retries + 1
        last: Optional[_RetryableFailure] = None

        for attempt in range(attempts):
            try:
                html = self._attempt(url)
            except _RetryableFailure as e:
                last = e
                if attempt + 1 >= attempts:
                    break
                delay_ms = backoff_delay_ms(attempt, self.backoff_base_ms, self.rng)
                logger.info(f"Attempt {attempt + 1}/{attempts} for {url} failed ({e}), "
                            f"retrying in {delay_ms:.0f}ms")
                self.sleep(delay_ms / 1000.0)
                continue
            except FetchFatal as e:
                e.attempts = attempt + 1
                logger.warning(f"Giving up on {url}: {e}")
                raise
            if attempt:
                logger.info(f"Fetched {url} after {attempt + 1} attempts")
            return html

        logger.warning(f"Retry budget exhausted for {url} after {attempts} attempts: {last}")
        raise FetchExhausted(
            url,
            f"Gave up on {url} after {attempts} attempts: {last}",
            attempts=attempts,
            status_code=last.status_code if last else None,
            last_cause=last.cause if last and last.cause else last,
        )
