"""URLs advertised by a site's sitemaps."""

import asyncio
import logging
from collections.abc import AsyncIterator
from urllib.parse import urljoin

import httpx
from defusedxml.ElementTree import ParseError, fromstring  # type: ignore[import-untyped]
from usp.tree import sitemap_tree_for_homepage  # type: ignore[import-untyped]

from api_doc_scraper.discovery.base import BaseDiscoverer, DiscoveredURL

logger = logging.getLogger(__name__)

WELL_KNOWN_SITEMAPS = ("/sitemap.xml", "/sitemap_index.xml")
DEFAULT_PRIORITY = 0.5
_NS = "{http://www.sitemaps.org/schemas/sitemap/0.9}"


def parse_urlset(xml: bytes) -> list[tuple[str, float]]:
    """(loc, priority) pairs from a ``<urlset>`` document."""
    entries: list[tuple[str, float]] = []
    for node in fromstring(xml).iter(f"{_NS}url"):
        loc = (node.findtext(f"{_NS}loc") or "").strip()
        if not loc:
            continue
        raw_priority = (node.findtext(f"{_NS}priority") or "").strip()
        try:
            priority = float(raw_priority) if raw_priority else DEFAULT_PRIORITY
        except ValueError:
            priority = DEFAULT_PRIORITY
        entries.append((loc, priority))
    return entries


class SitemapDiscoverer(BaseDiscoverer):
    """Sitemaps found through robots.txt by usp, else the well-known paths."""

    def __init__(
        self,
        base_url: str,
        max_urls: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url, max_urls)
        self._transport = transport

    async def discover(self) -> AsyncIterator[DiscoveredURL]:
        entries = await self._from_usp() or await self._from_well_known()
        count = 0
        for url, priority in entries:
            if self._limit_reached(count):
                break
            if self.should_include(url):
                count += 1
                yield DiscoveredURL(url=url, priority=priority)

    async def _from_usp(self) -> list[tuple[str, float]]:
        def walk() -> list[tuple[str, float]]:
            tree = sitemap_tree_for_homepage(self.base_url)
            return [
                (page.url, float(page.priority) if page.priority else DEFAULT_PRIORITY)
                for page in tree.all_pages()
            ]

        try:
            # usp blocks on network I/O
            entries = await asyncio.to_thread(walk)
        except Exception:
            logger.debug("usp could not read sitemaps for %s", self.base_url, exc_info=True)
            return []
        return [e for e in entries if self.should_include(e[0])]

    async def _from_well_known(self) -> list[tuple[str, float]]:
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0, follow_redirects=True) as client:
            for path in WELL_KNOWN_SITEMAPS:
                location = urljoin(self.base_url, path)
                try:
                    response = await client.get(location)
                    response.raise_for_status()
                    entries = [e for e in parse_urlset(response.content) if self.should_include(e[0])]
                except (httpx.HTTPError, ParseError, ValueError):
                    logger.debug("No usable sitemap at %s", location, exc_info=True)
                    continue
                if entries:
                    return entries
        return []
