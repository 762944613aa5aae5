"""Link-following URL discovery."""

import logging
from collections import deque
from collections.abc import AsyncIterator

import httpx

from api_doc_scraper.discovery.base import BaseDiscoverer, DiscoveredURL
from api_doc_scraper.fetcher.base import BaseFetcher
from api_doc_scraper.utils.url_utils import is_doc_url, is_same_domain, normalize_url

logger = logging.getLogger(__name__)

DOC_LINK_KEYWORDS = (
    "doc", "api", "reference", "guide", "endpoint", "auth", "rest",
    "method", "resource", "getting-started", "quickstart", "overview",
    "rate-limit", "webhook", "object", "error",
)
EXCLUDE_LINK_KEYWORDS = (
    "blog", "pricing", "login", "signin", "sign-in", "signup", "sign-up",
    "register", "careers", "jobs", "about", "contact", "legal", "privacy",
    "terms", "press", "status", "community", "forum", "support",
    "download", "changelog", "release-notes",
)


def filter_documentation_links(links: list[str], base_url: str) -> list[str]:
    """Keep same-host links that look like documentation pages."""
    kept: list[str] = []
    seen: set[str] = set()
    for link in links:
        lower = link.lower()
        if not (is_same_domain(link, base_url) and is_doc_url(link)):
            continue
        if any(kw in lower for kw in EXCLUDE_LINK_KEYWORDS):
            continue
        if not any(kw in lower for kw in DOC_LINK_KEYWORDS):
            continue
        norm = normalize_url(link)
        if norm not in seen:
            seen.add(norm)
            kept.append(link)
    return kept


class CrawlerDiscoverer(BaseDiscoverer):
    """Breadth-first link walk from ``base_url``; pages are only scanned for links."""

    def __init__(self, base_url: str, max_depth: int = 1, max_urls: int = 0,
                 transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url, max_urls)
        self.max_depth = max_depth
        self._transport = transport

    async def discover(self) -> AsyncIterator[DiscoveredURL]:
        frontier: deque[tuple[str, int]] = deque([(self.base_url, 0)])
        visited: set[str] = set()
        emitted = 0

        async with httpx.AsyncClient(
            transport=self._transport, timeout=30.0, follow_redirects=True
        ) as client:
            while frontier and not self._limit_reached(emitted):
                url, depth = frontier.popleft()
                key = normalize_url(url)
                if key in visited or not self.should_include(url):
                    continue
                visited.add(key)
                emitted += 1
                yield DiscoveredURL(url=url, depth=depth, source="links")

                if depth < self.max_depth:
                    for link in await self._page_links(client, url):
                        if normalize_url(link) not in visited:
                            frontier.append((link, depth + 1))

    async def _page_links(self, client: httpx.AsyncClient, url: str) -> list[str]:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError:
            logger.debug("Could not scan %s for links", url, exc_info=True)
            return []
        return BaseFetcher.extract_links(response.text, str(response.url))
