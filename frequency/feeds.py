"""Dialect detection and item extraction for RSS and Atom payloads.

Feeds in the wild are frequently malformed, so nothing here builds a
document tree. The payload is scanned for a handful of known tags with the
patterns below, which tolerate attributes, mixed case and CDATA wrappers.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional

from .models import Dialect, FeedItem
from .text import normalize, teaser

logger = logging.getLogger(__name__)

MAX_ITEMS = 5
MIN_TITLE_LENGTH = 4

_FLAGS = re.IGNORECASE | re.DOTALL

# Opening tag of a container, allowing attributes but not a self-closing tag.
RSS_CONTAINER_RE = re.compile(r"<item(?:\s[^>]*)?(?<!/)>", _FLAGS)
ATOM_CONTAINER_RE = re.compile(r"<entry(?:\s[^>]*)?(?<!/)>", _FLAGS)

CONTAINER_TAGS = {
    Dialect.RSS: "item",
    Dialect.ATOM: "entry",
}

TITLE_TAG = "title"
BODY_TAGS = ("description", "summary", "content")
LINK_TAG = "link"
DATE_TAGS = ("pubDate", "updated")

URI_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*:", re.IGNORECASE)
LINK_ELEMENT_RE = re.compile(r"<link(?:\s[^>]*)?>", _FLAGS)
HREF_ATTR_RE = re.compile(r"""\bhref\s*=\s*(?:"([^"]*)"|'([^']*)')""", _FLAGS)
REL_ATTR_RE = re.compile(r"""\brel\s*=\s*(?:"([^"]*)"|'([^']*)')""", _FLAGS)


def _block_pattern(tag: str) -> re.Pattern:
    return re.compile(rf"<{tag}(?:\s[^>]*)?(?<!/)>(.*?)</{tag}\s*>", _FLAGS)


def _text_pattern(tag: str) -> re.Pattern:
    return re.compile(
        rf"<{tag}(?:\s[^>]*)?(?<!/)>\s*(?:<!\[CDATA\[)?(.*?)(?:\]\]>)?\s*</{tag}\s*>",
        _FLAGS,
    )


BLOCK_PATTERNS: Dict[Dialect, re.Pattern] = {
    dialect: _block_pattern(tag) for dialect, tag in CONTAINER_TAGS.items()
}
TEXT_PATTERNS: Dict[str, re.Pattern] = {
    tag: _text_pattern(tag)
    for tag in (TITLE_TAG, *BODY_TAGS, LINK_TAG, *DATE_TAGS)
}


def detect_dialect(payload: str) -> Dialect:
    """Guess the syndication dialect from the container tags present.

    RSS wins when a document carries both kinds of container.
    """
    if not payload:
        return Dialect.UNKNOWN
    if RSS_CONTAINER_RE.search(payload):
        return Dialect.RSS
    if ATOM_CONTAINER_RE.search(payload):
        return Dialect.ATOM
    return Dialect.UNKNOWN


def _tag_text(block: str, tag: str) -> Optional[str]:
    match = TEXT_PATTERNS[tag].search(block)
    if match is None:
        return None
    return match.group(1)


def _first_text(block: str, tags) -> str:
    for tag in tags:
        value = _tag_text(block, tag)
        if value is not None:
            return value
    return ""


def _extract_link(block: str) -> str:
    """Return the item URL from a plain ``<link>`` or an Atom ``href``."""
    text = _tag_text(block, LINK_TAG)
    if text is not None and URI_SCHEME_RE.match(text.strip()):
        return text.strip()

    fallback = ""
    for element in LINK_ELEMENT_RE.finditer(block):
        href = HREF_ATTR_RE.search(element.group(0))
        if href is None:
            continue
        url = (href.group(1) if href.group(1) is not None else href.group(2)).strip()
        rel = REL_ATTR_RE.search(element.group(0))
        rel_value = (rel.group(1) or rel.group(2) or "").lower() if rel else ""
        if rel_value in ("", "alternate"):
            return url
        if not fallback:
            fallback = url
    return fallback


def parse_block(block: str) -> FeedItem:
    """Build an item from the inner markup of a single container block.

    Missing fields come back as empty strings.
    """
    title = normalize(_tag_text(block, TITLE_TAG))
    body = teaser(normalize(_first_text(block, BODY_TAGS)))
    link = _extract_link(block)
    published_at = _first_text(block, DATE_TAGS).strip()
    return FeedItem(title=title, teaser=body, link=link, published_at=published_at)


def iter_blocks(payload: str, dialect: Dialect) -> Iterator[str]:
    """Yield the inner markup of each container block in document order."""
    pattern = BLOCK_PATTERNS.get(dialect)
    if pattern is None or not payload:
        return
    for match in pattern.finditer(payload):
        yield match.group(1)


def extract_items(
    payload: str, dialect: Dialect, limit: int = MAX_ITEMS
) -> List[FeedItem]:
    """Return up to ``limit`` items with a usable title, in document order."""
    items: List[FeedItem] = []
    for block in iter_blocks(payload, dialect):
        item = parse_block(block)
        if len(item.title) < MIN_TITLE_LENGTH:
            logger.debug("Discarding item with short title %r", item.title)
            continue
        items.append(item)
        if len(items) >= limit:
            break

    logger.debug("Extracted %d %s items", len(items), dialect.value)
    return items
