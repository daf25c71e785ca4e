"""Title/image extraction from listing pages.

Strategies are tried in a fixed priority order. Title and image are picked
independently, so an image from meta tags can accompany a title from
linked data.
"""

import json
import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup

from models import ExtractionResult

logger = logging.getLogger(__name__)

REASON_PARSE_FAILED = "parse-failed"
REASON_PARSE_EXCEPTION = "parse-exception"

TITLE_KEYS = ("name", "headline", "title")
IMAGE_KEYS = ("image", "images", "thumbnailUrl", "contentUrl", "photo", "photos")
IMAGE_URL_KEYS = ("url", "contentUrl", "src", "href")

# Linked-data nodes describing the site rather than the listing.
SKIPPED_LD_TYPES = {"BreadcrumbList", "WebSite", "WebPage", "Organization", "SearchAction", "SiteNavigationElement"}

_STATE_ASSIGN_RE = re.compile(r"window\.(__[A-Za-z0-9_]+__)\s*=\s*")


@dataclass
class Candidate:
    title: Optional[str] = None
    image: Optional[str] = None
    miss: Optional[str] = None


@dataclass
class Document:
    soup: BeautifulSoup
    html: str
    base_url: str


def clean_title(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = re.sub(r"\s+", " ", value).strip()
    return text or None


def resolve_image_url(base_url: str, src: Any) -> Optional[str]:
    """Absolute http(s) URL for ``src``, or None for embedded/unresolvable values."""
    if not isinstance(src, str):
        return None
    s = src.strip()
    if not s or s.lower().startswith(("data:", "blob:")):
        return None
    try:
        resolved = urljoin(base_url, s)
    except ValueError:
        return None
    if urlparse(resolved).scheme not in ("http", "https"):
        return None
    return resolved


def _image_from_value(value: Any, base_url: str) -> Optional[str]:
    if isinstance(value, str):
        return resolve_image_url(base_url, value)
    if isinstance(value, list):
        for item in value:
            found = _image_from_value(item, base_url)
            if found:
                return found
    elif isinstance(value, dict):
        for key in IMAGE_URL_KEYS:
            found = resolve_image_url(base_url, value.get(key))
            if found:
                return found
    return None


def search_json(root: Any, base_url: str) -> tuple[Optional[str], Optional[str]]:
    """Breadth-first search of a JSON tree for the shallowest title and image."""
    title = None
    image = None
    queue = deque([root])
    while queue and (title is None or image is None):
        node = queue.popleft()
        if isinstance(node, dict):
            types = node.get("@type")
            types = types if isinstance(types, list) else [types]
            if any(isinstance(t, str) and t in SKIPPED_LD_TYPES for t in types):
                continue
            if title is None:
                for key in TITLE_KEYS:
                    title = clean_title(node.get(key))
                    if title:
                        break
            if image is None:
                for key in IMAGE_KEYS:
                    image = _image_from_value(node.get(key), base_url)
                    if image:
                        break
            queue.extend(v for v in node.values() if isinstance(v, (dict, list)))
        elif isinstance(node, list):
            queue.extend(v for v in node if isinstance(v, (dict, list)))
    return title, image


class Strategy:
    name = "base"

    def try_extract(self, doc: Document) -> Candidate:
        raise NotImplementedError


class LinkedDataStrategy(Strategy):
    """schema.org payloads in <script type="application/ld+json">."""
    name = "linked-data"

    def _blocks(self, soup: BeautifulSoup) -> tuple[list, int]:
        blocks = []
        malformed = 0
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                malformed += 1
                continue
            items = parsed if isinstance(parsed, list) else [parsed]
            for item in items:
                if not isinstance(item, dict):
                    continue
                graph = item.get("@graph")
                if isinstance(graph, list):
                    blocks.extend(g for g in graph if isinstance(g, dict))
                else:
                    blocks.append(item)
        return blocks, malformed

    def try_extract(self, doc: Document) -> Candidate:
        blocks, malformed = self._blocks(doc.soup)
        if not blocks:
            if malformed:
                return Candidate(miss=f"{malformed} linked-data block(s) were not valid JSON")
            return Candidate(miss="no linked-data blocks")
        title, image = search_json(blocks, doc.base_url)
        return Candidate(title=title, image=image,
                         miss=None if title else "linked data has no title-like field")


class PageStateStrategy(Strategy):
    """JSON page state assigned to a global in a script tag."""
    name = "page-state"

    def _decode_assignment(self, text: str, start: int) -> Any:
        value, _ = json.JSONDecoder().raw_decode(text, start)
        # The source site ships its state as a URL-encoded JSON string.
        if isinstance(value, str):
            value = json.loads(unquote(value))
        return value

    def _states(self, soup: BeautifulSoup) -> tuple[list, list[str]]:
        states = []
        errors = []
        next_data = soup.find("script", id="__NEXT_DATA__")
        if next_data and next_data.string:
            try:
                states.append(json.loads(next_data.string))
            except json.JSONDecodeError as e:
                errors.append(f"__NEXT_DATA__: {e.msg}")

        for script in soup.find_all("script"):
            text = script.string or ""
            for match in _STATE_ASSIGN_RE.finditer(text):
                try:
                    states.append(self._decode_assignment(text, match.end()))
                except (json.JSONDecodeError, ValueError) as e:
                    errors.append(f"{match.group(1)}: {e}")
        return states, errors

    def try_extract(self, doc: Document) -> Candidate:
        states, errors = self._states(doc.soup)
        if not states:
            if errors:
                return Candidate(miss=f"page-state blob not parseable ({'; '.join(errors[:3])})")
            return Candidate(miss="no page-state blob")
        title, image = search_json(states, doc.base_url)
        return Candidate(title=title, image=image,
                         miss=None if title else "page state has no title-like field")


class MetaTagStrategy(Strategy):
    name = "meta-tags"

    TITLE_META = ("og:title", "twitter:title")
    IMAGE_META = ("og:image", "og:image:secure_url", "og:image:url", "twitter:image")

    def _meta(self, soup: BeautifulSoup, keys: Iterable[str]) -> Iterable[str]:
        for key in keys:
            for attr in ("property", "name"):
                tag = soup.find("meta", attrs={attr: key})
                if tag and tag.get("content"):
                    yield tag["content"]

    def try_extract(self, doc: Document) -> Candidate:
        title = next(filter(None, (clean_title(v) for v in self._meta(doc.soup, self.TITLE_META))), None)
        image = next(filter(None, (resolve_image_url(doc.base_url, v)
                                   for v in self._meta(doc.soup, self.IMAGE_META))), None)
        return Candidate(title=title, image=image, miss=None if title else "no title meta tag")


class MarkupStrategy(Strategy):
    """Plain markup: <title>/<h1> and the first usable <img>."""
    name = "markup"

    IMG_ATTRS = ("src", "data-src", "data-original", "data-lazy-src")

    def _first_image(self, doc: Document) -> Optional[str]:
        for img in doc.soup.find_all("img"):
            for attr in self.IMG_ATTRS:
                resolved = resolve_image_url(doc.base_url, img.get(attr))
                if resolved:
                    return resolved
            for candidate in (img.get("srcset") or "").split(","):
                parts = candidate.split()
                if not parts:
                    continue
                resolved = resolve_image_url(doc.base_url, parts[0])
                if resolved:
                    return resolved
        return None

    def try_extract(self, doc: Document) -> Candidate:
        title = None
        for tag_name in ("title", "h1"):
            tag = doc.soup.find(tag_name)
            if tag:
                title = clean_title(tag.get_text())
                if title:
                    break
        return Candidate(title=title, image=self._first_image(doc),
                         miss=None if title else "no <title> or <h1> text")


DEFAULT_STRATEGIES = (LinkedDataStrategy(), PageStateStrategy(), MetaTagStrategy(), MarkupStrategy())


def extract(html: str, base_url: str, strategies=DEFAULT_STRATEGIES) -> ExtractionResult:
    """Best-effort title/image extraction. Never raises.

    A strategy that crashes is recorded as a warning and the rest still run.
    The result is ``parse-exception`` only when every strategy crashed, or
    the document could not be parsed at all.
    """
    try:
        doc = Document(soup=BeautifulSoup(html or "", "lxml"), html=html or "", base_url=base_url)
    except Exception as e:
        logger.warning(f"Could not parse document for {base_url}: {e}")
        return ExtractionResult.failure(REASON_PARSE_EXCEPTION, [f"{type(e).__name__}: {e}"])

    title = image = source = None
    warnings = []
    crashed = 0

    for strategy in strategies:
        try:
            candidate = strategy.try_extract(doc)
        except Exception as e:
            crashed += 1
            logger.warning(f"{strategy.name} strategy crashed for {base_url}: {e}")
            warnings.append(f"{strategy.name}: {type(e).__name__}: {e}")
            continue
        if candidate.miss:
            warnings.append(f"{strategy.name}: {candidate.miss}")
        if title is None and candidate.title:
            title, source = candidate.title, strategy.name
        if image is None and candidate.image:
            image = candidate.image
        if title and image:
            break

    if not title:
        logger.debug(f"No title found for {base_url}: {warnings}")
        all_crashed = bool(strategies) and crashed == len(strategies)
        reason = REASON_PARSE_EXCEPTION if all_crashed else REASON_PARSE_FAILED
        return ExtractionResult.failure(reason, warnings)
    logger.debug(f"Extracted title from {source} for {base_url}")
    return ExtractionResult.success(title, image, source=source)
