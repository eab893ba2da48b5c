"""Plain-text cleanup for feed fields."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

TEASER_LENGTH = 140

TAG_RE = re.compile(r"<[^>]+>")
WHITESPACE_RE = re.compile(r"\s+")

ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&nbsp;": " ",
}
ENTITY_RE = re.compile("|".join(re.escape(name) for name in ENTITIES))
# "&amp;amp;amp;lt;" style chains unwind in one step instead of one level per pass.
AMP_CHAIN_RE = re.compile(r"&(?:amp;)+")
MAX_PASSES = 8


def _clean_once(value: str) -> str:
    text = TAG_RE.sub(" ", value)
    text = AMP_CHAIN_RE.sub("&", text)
    text = ENTITY_RE.sub(lambda match: ENTITIES[match.group(0)], text)
    return WHITESPACE_RE.sub(" ", text).strip()


def normalize(raw: str | None) -> str:
    """Return ``raw`` as a single line of plain text.

    Markup is removed, the common XML/HTML entities are decoded and runs of
    whitespace collapse to a single space. Entities outside that small set
    are left as they are. Feeds often escape their HTML twice, so the pass
    is repeated until the text no longer changes. Escape chains collapse in
    a single pass, so a handful of passes always reaches that point;
    ``MAX_PASSES`` caps the work regardless.
    """
    text = raw or ""
    for _ in range(MAX_PASSES):
        cleaned = _clean_once(text)
        if cleaned == text:
            break
        text = cleaned
    return text


def teaser(text: str, limit: int = TEASER_LENGTH) -> str:
    """Cut text down to ``limit`` characters."""
    if len(text) <= limit:
        return text
    logger.debug("Truncating teaser to %d characters", limit)
    return text[:limit]
