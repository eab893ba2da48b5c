"""Static mapping from category keys to their ordered feed sources."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, List, Mapping, Sequence, Tuple

from .errors import UnknownCategory
from .models import FeedSource


class CategoryRegistry(Mapping[str, Tuple[FeedSource, ...]]):
    """Read-only category to source-list lookup.

    Source lists keep their configured priority order and are never empty.
    """

    def __init__(self, categories: Mapping[str, Sequence[FeedSource]]):
        frozen = {}
        for key, sources in categories.items():
            sources = tuple(sources)
            if not sources:
                raise ValueError(f"Category {key!r} has no feed sources.")
            frozen[key] = sources
        self._categories = MappingProxyType(frozen)

    @classmethod
    def from_sources(cls, sources: Iterable[FeedSource]) -> "CategoryRegistry":
        """Group sources by their category, keeping first-seen order."""
        grouped: dict[str, List[FeedSource]] = {}
        for source in sources:
            grouped.setdefault(source.category, []).append(source)
        return cls(grouped)

    def sources_for(self, category: str) -> Tuple[FeedSource, ...]:
        try:
            return self._categories[category]
        except KeyError:
            raise UnknownCategory(category) from None

    def __getitem__(self, category: str) -> Tuple[FeedSource, ...]:
        return self.sources_for(category)

    def __iter__(self) -> Iterator[str]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def __repr__(self) -> str:
        summary = ", ".join(
            f"{key}={len(sources)}" for key, sources in self._categories.items()
        )
        return f"CategoryRegistry({summary})"
