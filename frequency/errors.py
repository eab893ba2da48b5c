"""Error kinds surfaced by feed resolution and the token relay."""

from __future__ import annotations

from typing import Sequence, Tuple

from .models import Skip


class FeedError(Exception):
    """Base class for errors reported by the feed resolver."""

    def __init__(self, category: str, message: str):
        super().__init__(message)
        self.category = category


class UnknownCategory(FeedError, KeyError):
    """The requested category is not configured."""

    def __init__(self, category: str):
        super().__init__(category, f"Unknown feed category: {category!r}")

    def __str__(self) -> str:
        return self.args[0]


class NoSourceAvailable(FeedError, RuntimeError):
    """Every configured source for a category failed."""

    def __init__(self, category: str, attempts: Sequence[Skip] = ()):
        self.attempts: Tuple[Skip, ...] = tuple(attempts)
        super().__init__(
            category,
            f"No source available for category {category!r} "
            f"after {len(self.attempts)} attempt(s)",
        )


class TokenRelayError(RuntimeError):
    """The identity provider could not be reached or replied with garbage."""
