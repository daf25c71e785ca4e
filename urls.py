"""URL normalization for listing lookups and dedup."""

import re
from urllib.parse import urlsplit

from config import SOURCE_DOMAIN_MARKER
from errors import InvalidURL, UnsupportedDomain

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.I)
_HOST_RE = re.compile(r"^[a-z0-9](?:[a-z0-9\-.]*[a-z0-9])?$")


def normalize_url(raw: str, marker: str = SOURCE_DOMAIN_MARKER) -> str:
    """Canonicalize a listing URL.

    - Assume https:// when no scheme is given
    - Lowercase scheme + hostname, keep an explicit port
    - Keep the path, drop query, fragment and credentials

    Raises InvalidURL for anything unparsable and UnsupportedDomain when the
    host does not contain ``marker``.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidURL("URL must be a non-empty string")

    candidate = raw.strip()
    if candidate.startswith("//"):
        candidate = f"https:{candidate}"
    elif not _SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as e:
        raise InvalidURL(f"Invalid URL format: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        raise InvalidURL(f"Unsupported scheme: {scheme}")

    host = (parts.hostname or "").lower()
    if not host or not _HOST_RE.match(host):
        raise InvalidURL("Invalid URL format: missing or malformed host")

    if marker.lower() not in host:
        raise UnsupportedDomain(f"URL must point to a {marker} listing page")

    netloc = f"{host}:{port}" if port is not None else host
    path = parts.path or "/"
    return f"{scheme}://{netloc}{path}"
