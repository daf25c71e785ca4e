"""Exceptions raised across the resolution pipeline and record store."""

from typing import Optional


class InvalidURL(ValueError):
    """Input could not be parsed as an http(s) URL."""


class UnsupportedDomain(ValueError):
    """URL is well formed but does not point at the source site."""


class FetchError(Exception):
    reason = "fetch-failed"

    def __init__(self, url: str, message: str, attempts: int = 1,
                 status_code: Optional[int] = None,
                 last_cause: Optional[BaseException] = None):
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.status_code = status_code
        self.last_cause = last_cause


class FetchFatal(FetchError):
    """Non-retryable failure: unexpected status or network error."""
    reason = "fetch-fatal"


class FetchExhausted(FetchError):
    """Every attempt in the retry budget hit a retryable failure."""
    reason = "fetch-exhausted"


class DuplicateListing(Exception):
    """A record with the same normalized URL already exists."""

    def __init__(self, url: str):
        super().__init__(f"Listing already exists for {url}")
        self.url = url


class PrimaryUnavailable(Exception):
    """The primary store could not serve the operation."""


class ListingNotFound(LookupError):
    def __init__(self, record_id: str):
        super().__init__(f"Listing not found: {record_id}")
        self.record_id = record_id
