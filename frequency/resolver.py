"""Per-category feed resolution with ordered source failover."""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Iterable, Iterator, List, Tuple, Union

from .errors import FeedError, NoSourceAvailable
from .feeds import MAX_ITEMS, detect_dialect, extract_items
from .models import (
    Attempt,
    Dialect,
    FeedResult,
    FeedSource,
    Skip,
    SkipReason,
    Success,
)
from .registry import CategoryRegistry
from .transport import Transport

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 8.0
USER_AGENT = "FrequencyApp/1.0"
ACCEPT = (
    "application/rss+xml, application/atom+xml, application/xml;q=0.9, "
    "text/xml;q=0.9, */*;q=0.5"
)

Outcome = Union[FeedResult, FeedError]


class FeedResolver:
    """Resolve a category to items from the first source that works.

    Sources are tried one at a time in configured order. A source is passed
    over when the fetch fails, when the payload is neither RSS nor Atom, or
    when no item survives extraction. Only running out of sources is
    reported to the caller.
    """

    def __init__(
        self,
        registry: CategoryRegistry,
        transport: Transport,
        timeout: float = FETCH_TIMEOUT,
        user_agent: str = USER_AGENT,
        max_items: int = MAX_ITEMS,
    ):
        self.registry = registry
        self.transport = transport
        self.timeout = timeout
        self.max_items = max_items
        self.headers = {"User-Agent": user_agent, "Accept": ACCEPT}

    def categories(self) -> List[str]:
        return list(self.registry)

    def try_source(self, source: FeedSource) -> Attempt:
        """Fetch, detect and extract a single source."""
        logger.debug("Trying source %s for '%s'", source.url, source.category)
        response = self.transport.fetch(source.url, self.headers, self.timeout)
        if not response.ok:
            detail = f"HTTP {response.status}" if response.status else "transport error"
            return Skip(source, SkipReason.FETCH_FAILED, detail)

        dialect = detect_dialect(response.body)
        if dialect is Dialect.UNKNOWN:
            return Skip(source, SkipReason.UNKNOWN_DIALECT)

        items = extract_items(response.body, dialect, limit=self.max_items)
        if not items:
            return Skip(source, SkipReason.NO_ITEMS, dialect.value)

        return Success(source, dialect, tuple(items))

    def attempts(self, category: str) -> Iterator[Attempt]:
        """Lazily yield one attempt per source, in priority order.

        Raises ``UnknownCategory`` before any fetch when the key is unknown.
        """
        sources = self.registry.sources_for(category)
        return (self.try_source(source) for source in sources)

    def resolve(self, category: str) -> FeedResult:
        """Return items for ``category`` from its first usable source."""
        skipped: List[Skip] = []
        for attempt in self.attempts(category):
            if isinstance(attempt, Success):
                logger.info(
                    "Resolved '%s' from %s (%s, %d items)",
                    category,
                    attempt.source.url,
                    attempt.dialect.value,
                    len(attempt.items),
                )
                return FeedResult(category, attempt.source, attempt.items)

            logger.warning(
                "Skipping source %s for '%s': %s%s",
                attempt.source.url,
                category,
                attempt.reason.value,
                f" ({attempt.detail})" if attempt.detail else "",
            )
            skipped.append(attempt)

        logger.error("All %d sources failed for '%s'", len(skipped), category)
        raise NoSourceAvailable(category, skipped)

    def resolve_many(
        self, categories: Iterable[str], max_workers: int = 4
    ) -> List[Tuple[str, Outcome]]:
        """Resolve several categories concurrently.

        Each category still walks its own sources sequentially. Results keep
        the order of ``categories``; failures are returned, not raised.
        """
        categories = list(categories)
        outcomes: dict[int, Outcome] = {}

        def process(category: str) -> Outcome:
            try:
                return self.resolve(category)
            except FeedError as exc:
                return exc

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, max_workers)
        ) as executor:
            future_to_index = {
                executor.submit(process, category): index
                for index, category in enumerate(categories)
            }
            for future in concurrent.futures.as_completed(future_to_index):
                outcomes[future_to_index[future]] = future.result()

        return [(category, outcomes[index]) for index, category in enumerate(categories)]
