"""Shared shape of the sitemap and link-following URL sources."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from pydantic import BaseModel

from api_doc_scraper.utils.url_utils import is_doc_url, is_same_domain


class DiscoveredURL(BaseModel):
    url: str
    priority: float = 0.5
    depth: int = 0
    source: str = "sitemap"


class BaseDiscoverer(ABC):
    """A source of candidate documentation URLs on one host.

    ``max_urls`` of 0 means no cap.
    """

    def __init__(self, base_url: str, max_urls: int = 0):
        self.base_url = base_url
        self.max_urls = max_urls

    @abstractmethod
    def discover(self) -> AsyncIterator[DiscoveredURL]: ...

    def should_include(self, url: str) -> bool:
        return is_same_domain(url, self.base_url) and is_doc_url(url)

    def _limit_reached(self, count: int) -> bool:
        return bool(self.max_urls) and count >= self.max_urls
