"""Shared data models for frequency."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


class Dialect(Enum):
    """Syndication format of a feed document."""

    RSS = "rss"
    ATOM = "atom"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FeedSource:
    """A single upstream feed configured for a category."""

    category: str
    title: str
    url: str


@dataclass(frozen=True)
class FetchResponse:
    """Body and outcome of one transport call."""

    body: str
    ok: bool
    status: int | None = None


@dataclass(frozen=True)
class FeedItem:
    """Normalized story extracted from a feed."""

    title: str
    teaser: str
    link: str
    published_at: str

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "tldr": self.teaser,
            "link": self.link,
            "pubDate": self.published_at,
        }


@dataclass(frozen=True)
class FeedResult:
    """Items resolved for a category from the first usable source."""

    category: str
    source: FeedSource
    items: Tuple[FeedItem, ...]

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "source": self.source.url,
            "items": [item.to_dict() for item in self.items],
        }


class SkipReason(Enum):
    FETCH_FAILED = "fetch failed"
    UNKNOWN_DIALECT = "unrecognised feed dialect"
    NO_ITEMS = "no usable items"


@dataclass(frozen=True)
class Success:
    """A source that produced at least one item."""

    source: FeedSource
    dialect: Dialect
    items: Tuple[FeedItem, ...]


@dataclass(frozen=True)
class Skip:
    """A source that was passed over, and why."""

    source: FeedSource
    reason: SkipReason
    detail: str = ""


Attempt = Union[Success, Skip]
