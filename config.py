"""Configuration defaults for the listing resolver.

Everything here can be overridden through environment variables.
"""

import os

# Database path
DB_PATH = os.environ.get("DB_PATH", "listings.db")

# Source site. A listing URL is accepted only if its host contains the marker.
SOURCE_DOMAIN_MARKER = os.environ.get("SOURCE_DOMAIN_MARKER", "avito").lower()
SOURCE_HOMEPAGE = os.environ.get("SOURCE_HOMEPAGE", "https://www.avito.ru/")

# User agents to rotate (not user-configurable, just a static list)
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
]

# ── Fetch policy ───────────────────────────────────────────────

FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "12"))
FETCH_BACKOFF_BASE_MS = int(os.environ.get("FETCH_BACKOFF_BASE_MS", "500"))
FETCH_MAX_RETRIES = int(os.environ.get("FETCH_MAX_RETRIES", "4"))
FETCH_MAX_REDIRECTS = int(os.environ.get("FETCH_MAX_REDIRECTS", "5"))

# Statuses worth another attempt: rate limiting and temporary blocks.
RETRYABLE_STATUSES = {403, 429, 503}

# ── Caches ─────────────────────────────────────────────────────

PARSE_CACHE_TTL_SECONDS = int(os.environ.get("PARSE_CACHE_TTL_SECONDS", str(24 * 3600)))
PARSE_CACHE_MAX_ENTRIES = int(os.environ.get("PARSE_CACHE_MAX_ENTRIES", "10000"))
MIRROR_TTL_SECONDS = int(os.environ.get("MIRROR_TTL_SECONDS", str(24 * 3600)))
MIRROR_MAX_ENTRIES = int(os.environ.get("MIRROR_MAX_ENTRIES", "100000"))
PRUNE_INTERVAL_MINUTES = float(os.environ.get("PRUNE_INTERVAL_MINUTES", "30"))

# ── Records ────────────────────────────────────────────────────

PLACEHOLDER_TITLE = os.environ.get("PLACEHOLDER_TITLE", "Listing details unavailable")

LIST_DEFAULT_LIMIT = int(os.environ.get("LIST_DEFAULT_LIMIT", "20"))
LIST_MAX_LIMIT = int(os.environ.get("LIST_MAX_LIMIT", "100"))
