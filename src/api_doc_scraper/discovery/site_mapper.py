"""Fast URL enumeration for a documentation root."""

import asyncio
import logging
import time

import httpx
from pydantic import BaseModel, Field

from api_doc_scraper.discovery.crawler import CrawlerDiscoverer
from api_doc_scraper.discovery.sitemap import SitemapDiscoverer
from api_doc_scraper.errors import ScrapeError, ScrapeErrorCode
from api_doc_scraper.utils.url_utils import normalize_url, validate_url

logger = logging.getLogger(__name__)


class SiteMap(BaseModel):
    urls: list[str] = Field(default_factory=list)
    duration_ms: int = 0


class SiteMapper:
    """Enumerate candidate URLs without fetching page content.

    Sitemaps are read first; the root page's own links are harvested
    one hop deep so sites without a sitemap still produce candidates.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, link_depth: int = 1):
        self._transport = transport
        self.link_depth = link_depth

    async def map_site(
        self,
        root_url: str,
        limit: int = 5000,
        timeout_ms: int = 60000,
        search_hint: str | None = None,
    ) -> SiteMap:
        validate_url(root_url)
        start = time.monotonic()
        try:
            urls = await asyncio.wait_for(
                self._collect(root_url, limit), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError as e:
            raise ScrapeError(
                root_url,
                ScrapeErrorCode.TIMEOUT,
                f"Site mapping timed out after {timeout_ms}ms",
            ) from e

        if search_hint:
            hint = search_hint.lower()
            # sorted() is stable, so discovery order holds within each group
            urls = sorted(urls, key=lambda u: hint not in u.lower())

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("Mapped %d URLs for %s in %dms", len(urls), root_url, duration_ms)
        return SiteMap(urls=urls, duration_ms=duration_ms)

    async def _collect(self, root_url: str, limit: int) -> list[str]:
        seen: set[str] = set()
        urls: list[str] = []

        def add(url: str) -> bool:
            normalized = normalize_url(url)
            if normalized not in seen:
                seen.add(normalized)
                urls.append(normalized)
            return len(urls) >= limit

        add(root_url)
        if len(urls) >= limit:
            return urls

        sitemap = SitemapDiscoverer(root_url, max_urls=limit, transport=self._transport)
        async for discovered in sitemap.discover():
            if add(discovered.url):
                return urls

        crawler = CrawlerDiscoverer(
            root_url, max_depth=self.link_depth, max_urls=limit, transport=self._transport
        )
        async for discovered in crawler.discover():
            if add(discovered.url):
                return urls
        return urls
