"""Drive the fetcher across a documentation site and build one corpus."""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from api_doc_scraper.config import AppConfig, CrawlMode
from api_doc_scraper.crawl.prioritizer import PagePrioritizer, PrioritizedUrl, TriageResult
from api_doc_scraper.discovery.classifier import UrlCategory, classify, pre_filter
from api_doc_scraper.discovery.crawler import filter_documentation_links
from api_doc_scraper.discovery.site_mapper import SiteMapper
from api_doc_scraper.errors import ScrapeError, ScrapeErrorCode
from api_doc_scraper.fetcher.base import BaseFetcher
from api_doc_scraper.llm import LlmClient
from api_doc_scraper.utils.cancellation import CancellationToken
from api_doc_scraper.utils.rate_limiter import RateLimiter
from api_doc_scraper.utils.url_utils import normalize_url, title_from_url, validate_url

logger = logging.getLogger(__name__)

_SPEC_SUFFIXES = (".json", ".yaml", ".yml")
_OVERVIEW_CATEGORIES = (UrlCategory.API_REFERENCE, UrlCategory.GETTING_STARTED)


class CrawlProgress(BaseModel):
    stage: str  # mapping / triaging / scraping / completed
    message: str
    pages_crawled: int = 0
    pages_total: int = 0


ProgressCallback = Callable[[CrawlProgress], None]


class CrawledPage(BaseModel):
    url: str
    title: str | None = None
    category: UrlCategory = UrlCategory.OTHER
    content: str = ""
    success: bool = False
    error: str | None = None
    error_code: ScrapeErrorCode | None = None
    duration_ms: int = 0


class CrawlResult(BaseModel):
    root_url: str
    pages: list[CrawledPage] = Field(default_factory=list)
    aggregated_content: str = ""
    total_urls_discovered: int = 0
    prioritized_urls: list[PrioritizedUrl] = Field(default_factory=list)
    skipped_urls: list[str] = Field(default_factory=list)
    used_fallback_triage: bool = False
    duration_ms: int = 0

    @property
    def pages_crawled(self) -> int:
        return sum(1 for p in self.pages if p.success)

    @property
    def pages_failed(self) -> int:
        return sum(1 for p in self.pages if not p.success)

    @property
    def source_urls(self) -> list[str]:
        return [p.url for p in self.pages if p.success]


class CrawlOrchestrator:
    """Fetch documentation pages one at a time with pacing.

    The fetcher must already be open (``async with fetcher``); the
    orchestrator never owns its lifecycle.
    """

    def __init__(
        self,
        fetcher: BaseFetcher,
        config: AppConfig | None = None,
        llm: LlmClient | None = None,
        site_mapper: SiteMapper | None = None,
        prioritizer: PagePrioritizer | None = None,
    ):
        self.fetcher = fetcher
        self.config = config or AppConfig()
        self.site_mapper = site_mapper or SiteMapper()
        self.prioritizer = prioritizer or PagePrioritizer(llm, self.config.triage)
        self.rate_limiter = RateLimiter(self.config.rate_limit.delay_seconds)

    async def crawl(
        self,
        root_url: str,
        mode: CrawlMode | None = None,
        max_pages: int | None = None,
        wishlist: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CrawlResult:
        """Crawl ``root_url`` in the given mode within the total time budget."""
        validate_url(root_url)
        mode = mode or self.config.crawl.mode
        max_pages = max_pages or self.config.crawl.max_pages
        if mode == CrawlMode.INTELLIGENT and root_url.lower().endswith(_SPEC_SUFFIXES):
            mode = CrawlMode.SINGLE

        total_timeout = self.config.crawl.total_timeout_ms / 1000
        if mode == CrawlMode.SINGLE:
            run = self.crawl_single(root_url, on_progress, token)
        elif mode == CrawlMode.BFS:
            run = self.crawl_bfs(root_url, max_pages, on_progress, token)
        else:
            run = self.crawl_intelligent(root_url, max_pages, wishlist, on_progress, token)

        try:
            return await asyncio.wait_for(run, timeout=total_timeout)
        except asyncio.TimeoutError as e:
            raise ScrapeError(
                root_url,
                ScrapeErrorCode.TIMEOUT,
                f"Crawl exceeded total time budget of {total_timeout:.0f}s",
            ) from e

    async def crawl_single(
        self,
        root_url: str,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CrawlResult:
        """Fetch only the root URL; its content is the corpus as-is."""
        start = time.monotonic()
        _report(on_progress, "scraping", f"Fetching {root_url}", 0, 1)
        page = await self._fetch_page(root_url, classify(root_url).category, token)
        if not page.success:
            raise self._fatal(root_url, page)
        _report(on_progress, "completed", "Fetched 1 page", 1, 1)
        return CrawlResult(
            root_url=root_url,
            pages=[page],
            aggregated_content=page.content,
            total_urls_discovered=1,
            duration_ms=_elapsed_ms(start),
        )

    async def crawl_intelligent(
        self,
        root_url: str,
        max_pages: int,
        wishlist: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CrawlResult:
        """Map the site, triage the candidates, then fetch the selection."""
        start = time.monotonic()
        root = normalize_url(root_url)

        _report(on_progress, "mapping", f"Mapping documentation site: {root_url}")
        _check(token)
        try:
            site_map = await self.site_mapper.map_site(
                root_url,
                limit=self.config.map.limit,
                timeout_ms=self.config.map.timeout_ms,
                search_hint="api",
            )
            discovered = site_map.urls
        except ScrapeError as e:
            logger.warning("Site mapping failed, crawling root URL only: %s", e.message)
            discovered = [root_url]
        _report(on_progress, "mapping", f"Discovered {len(discovered)} URLs")

        filtered = pre_filter([root_url, *discovered], root_url)
        pool = filtered.included
        if root not in pool:
            pool.insert(0, root)
        logger.info(
            "Pre-filter: %d mapped, %d included, %d excluded",
            len(discovered), len(pool), len(filtered.excluded),
        )

        _report(on_progress, "triaging", f"Analyzing {len(pool)} URLs...")
        _check(token)
        triage: TriageResult = await self.prioritizer.prioritize(pool, max_pages, wishlist)
        selected = triage.prioritized[:max_pages]
        _report(on_progress, "triaging", f"Prioritized {len(selected)} URLs", 0, len(selected))

        pages: list[CrawledPage] = []
        for i, candidate in enumerate(selected):
            _report(
                on_progress, "scraping",
                f"[{i + 1}/{len(selected)}] Scraping: {candidate.url}",
                sum(1 for p in pages if p.success), len(selected),
            )
            page = await self._fetch_page(candidate.url, candidate.category, token)
            pages.append(page)
            if not page.success:
                self._handle_failure(root, page)

        if not any(p.success for p in pages):
            raise ScrapeError(root_url, ScrapeErrorCode.SCRAPE_FAILED, "No documentation pages could be fetched")

        result = CrawlResult(
            root_url=root_url,
            pages=pages,
            total_urls_discovered=len(discovered),
            prioritized_urls=triage.prioritized,
            skipped_urls=filtered.excluded + triage.skipped,
            used_fallback_triage=triage.used_fallback,
        )
        result.aggregated_content = aggregate_pages(pages, triage.prioritized, root_url)
        result.duration_ms = _elapsed_ms(start)
        _report(on_progress, "completed", f"Successfully scraped {result.pages_crawled} pages",
                result.pages_crawled, len(selected))
        return result

    async def crawl_bfs(
        self,
        root_url: str,
        max_pages: int,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CrawlResult:
        """Follow documentation links breadth-first from the root."""
        start = time.monotonic()
        root = normalize_url(root_url)
        limiter = RateLimiter(self.config.crawl.bfs_request_delay_seconds)
        queue: list[tuple[str, int]] = [(root_url, 0)]
        visited: set[str] = set()
        pages: list[CrawledPage] = []

        while queue and len(pages) < max_pages:
            url, depth = queue.pop(0)
            normalized = normalize_url(url)
            if normalized in visited:
                continue
            visited.add(normalized)

            _report(on_progress, "scraping", f"[{len(pages) + 1}/{max_pages}] Scraping: {url}",
                    sum(1 for p in pages if p.success), max_pages)
            page, links = await self._fetch_with_links(url, limiter, token)
            pages.append(page)
            if not page.success:
                self._handle_failure(root, page)
                continue

            if depth < self.config.crawl.max_depth:
                for link in filter_documentation_links(links, root_url):
                    if normalize_url(link) not in visited:
                        queue.append((link, depth + 1))

        prioritized = [
            PrioritizedUrl(url=p.url, priority=classify(p.url).pattern_score, category=p.category,
                           reason="Link traversal")
            for p in pages if p.success
        ]
        result = CrawlResult(
            root_url=root_url,
            pages=pages,
            total_urls_discovered=len(visited) + len(queue),
            prioritized_urls=prioritized,
            skipped_urls=[u for u, _ in queue],
        )
        result.aggregated_content = aggregate_pages(pages, prioritized, root_url)
        result.duration_ms = _elapsed_ms(start)
        _report(on_progress, "completed", f"Successfully scraped {result.pages_crawled} pages",
                result.pages_crawled, len(pages))
        return result

    async def crawl_urls(
        self,
        urls: list[str],
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CrawlResult:
        """Fetch an explicit URL list, skipping mapping and triage.

        Failed pages are recorded and skipped; the crawl fails only when
        no page could be fetched.
        """
        start = time.monotonic()
        pages: list[CrawledPage] = []
        sections: list[str] = []
        for i, url in enumerate(urls):
            _report(on_progress, "scraping", f"Scraping page {i + 1}/{len(urls)}: {url}", len(sections), len(urls))
            page = await self._fetch_page(url, classify(url).category, token)
            pages.append(page)
            if page.success:
                sections.append(f"--- SOURCE: {url} ---\n\n{page.content}")
            else:
                logger.warning("Failed to fetch %s: %s", url, page.error)

        if not sections:
            raise ScrapeError(
                urls[0] if urls else "",
                ScrapeErrorCode.SCRAPE_FAILED,
                "Failed to scrape any of the provided URLs",
            )
        _report(on_progress, "completed", f"Successfully scraped {len(sections)} pages", len(sections), len(urls))
        return CrawlResult(
            root_url=urls[0],
            pages=pages,
            aggregated_content="\n\n".join(sections),
            total_urls_discovered=len(urls),
            duration_ms=_elapsed_ms(start),
        )

    async def _fetch_page(
        self, url: str, category: UrlCategory, token: CancellationToken | None
    ) -> CrawledPage:
        page, _ = await self._fetch_with_links(url, self.rate_limiter, token, category)
        return page

    async def _fetch_with_links(
        self,
        url: str,
        limiter: RateLimiter,
        token: CancellationToken | None,
        category: UrlCategory | None = None,
    ) -> tuple[CrawledPage, list[str]]:
        _check(token)
        await limiter.wait()
        _check(token)
        category = category or classify(url).category
        start = time.monotonic()
        try:
            content = await self.fetcher.scrape(url, timeout_ms=self.config.fetcher.timeout_ms)
        except ScrapeError as e:
            if e.code == ScrapeErrorCode.RATE_LIMITED:
                limiter.back_off()
            logger.debug("Fetch failed for %s", url, exc_info=True)
            page = CrawledPage(
                url=url, category=category, error=e.message, error_code=e.code,
                duration_ms=_elapsed_ms(start),
            )
            return page, []
        limiter.ease_off()
        page = CrawledPage(
            url=url,
            title=content.title,
            category=category,
            content=content.content,
            success=True,
            duration_ms=_elapsed_ms(start),
        )
        return page, content.links

    def _handle_failure(self, root: str, page: CrawledPage) -> None:
        """Root failures always abort; others only when continue_on_error is off."""
        if normalize_url(page.url) == root or not self.config.crawl.continue_on_error:
            raise self._fatal(page.url, page)
        logger.warning("Skipping %s: %s", page.url, page.error)

    @staticmethod
    def _fatal(url: str, page: CrawledPage) -> ScrapeError:
        return ScrapeError(
            url,
            page.error_code or ScrapeErrorCode.UNKNOWN_ERROR,
            page.error or f"Failed to fetch {url}",
        )


def aggregate_pages(
    pages: list[CrawledPage],
    prioritized: list[PrioritizedUrl],
    root_url: str,
) -> str:
    """Join successful pages into one Markdown corpus, auth pages first.

    Sections follow: authentication, overview and getting started,
    endpoints, everything else. Within a section pages are ordered by
    priority.
    """
    successful = [p for p in pages if p.success]
    if not successful:
        return ""

    info = {p.url: p for p in prioritized}
    order = {p.url: i for i, p in enumerate(successful)}

    def category_of(page: CrawledPage) -> UrlCategory:
        return info[page.url].category if page.url in info else page.category

    ranked = sorted(
        successful,
        key=lambda p: (-(info[p.url].priority if p.url in info else 0), order[p.url]),
    )
    groups: list[tuple[str, str | None, list[CrawledPage]]] = [
        (
            "# Authentication",
            "> This section contains authentication and authorization documentation.",
            [p for p in ranked if category_of(p) == UrlCategory.AUTHENTICATION],
        ),
        ("# API Overview & Getting Started", None,
         [p for p in ranked if category_of(p) in _OVERVIEW_CATEGORIES]),
        ("# API Endpoints", None,
         [p for p in ranked if category_of(p) == UrlCategory.API_ENDPOINT]),
        ("# Additional Documentation", None,
         [p for p in ranked if category_of(p) in (UrlCategory.RATE_LIMITS, UrlCategory.OTHER)]),
    ]

    sections = [
        "# API Documentation\n",
        f"> Crawled from: {root_url}",
        f"> Pages: {len(successful)}",
        f"> Generated: {datetime.now(timezone.utc).isoformat()}\n",
        "---\n",
    ]
    for heading, note, group in groups:
        if not group:
            continue
        sections.append(heading + "\n")
        if note:
            sections.append(note + "\n")
        for page in group:
            sections.append(format_page_section(page, info.get(page.url)))
    return "\n".join(sections)


def format_page_section(page: CrawledPage, info: PrioritizedUrl | None = None) -> str:
    title = page.title or title_from_url(page.url)
    category = (info.category if info else page.category).value.replace("_", " ")
    wishlist_note = ""
    if info and info.matches_wishlist:
        wishlist_note = f" (matches: {', '.join(info.matched_wishlist_items)})"
    return "\n".join([
        f"## {title} [{category}]\n",
        f"> Source: {page.url}{wishlist_note}\n",
        page.content,
        "\n---\n",
    ])


def _report(
    callback: ProgressCallback | None,
    stage: str,
    message: str,
    pages_crawled: int = 0,
    pages_total: int = 0,
) -> None:
    logger.debug("[%s] %s", stage, message)
    if callback:
        callback(CrawlProgress(
            stage=stage, message=message, pages_crawled=pages_crawled, pages_total=pages_total
        ))


def _check(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
