import pytest

from frequency.models import FeedSource
from frequency.registry import CategoryRegistry


@pytest.fixture
def make_registry():
    def factory(**categories):
        return CategoryRegistry(
            {
                key: [FeedSource(key, url.rsplit("/", 1)[-1], url) for url in urls]
                for key, urls in categories.items()
            }
        )

    return factory
