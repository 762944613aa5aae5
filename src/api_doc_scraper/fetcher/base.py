"""Page fetching shared by all transports: retries, failure typing and Markdown rendering."""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from api_doc_scraper.config import FetcherConfig
from api_doc_scraper.content import ContentExtractor, html_to_markdown
from api_doc_scraper.errors import ScrapeError, ScrapeErrorCode
from api_doc_scraper.utils.url_utils import is_doc_url, make_absolute, validate_url

logger = logging.getLogger(__name__)

RETRY_DELAY_CAP = 60.0
_JITTER = 0.5

_TIMEOUT_KEYWORDS = ("timeout", "timed out", "deadline")
_NETWORK_KEYWORDS = (
    "connect", "refused", "dns", "name resolution", "network",
    "socket", "enotfound", "econnrefused", "unreachable",
)
_RAW_CONTENT_TYPES = ("json", "yaml", "yml", "text/plain", "text/markdown")
_SKIPPED_SCHEMES = ("mailto:", "javascript:", "tel:")


class FetchResult(BaseModel):
    """One raw HTTP exchange. ``status_code`` 0 means no response arrived."""

    url: str
    final_url: str
    html: str
    status_code: int
    content_type: str = ""
    error: str | None = None
    retry_after: float | None = None
    attempts: int = 1

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 400 and self.error is None

    @property
    def transient(self) -> bool:
        """Rate limits, server errors and dropped connections are worth another try."""
        if self.status_code == 0:
            return self.error is not None
        return self.status_code == 429 or self.status_code >= 500


def parse_retry_after(value: str | None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    if value.strip().replace(".", "", 1).isdigit():
        return float(value)
    try:
        remaining = parsedate_to_datetime(value) - datetime.now(timezone.utc)
    except (TypeError, ValueError):
        logger.debug("Ignoring Retry-After header %r", value)
        return None
    return max(remaining.total_seconds(), 0.0)


def backoff_delay(attempt: int, base_delay: float, retry_after: float | None = None) -> float:
    delay = base_delay * 2 ** attempt + random.uniform(0, _JITTER)
    if retry_after is not None and retry_after > delay:
        delay = retry_after
    return min(delay, RETRY_DELAY_CAP)


class PageContent(BaseModel):
    """Readable content of one fetched page."""

    url: str
    final_url: str
    content: str
    title: str | None = None
    links: list[str] = Field(default_factory=list)


def classify_failure(result: FetchResult) -> ScrapeError:
    """Turn a failed fetch into a typed ScrapeError."""
    url = result.url
    status = result.status_code
    if status == 429:
        return ScrapeError(
            url,
            ScrapeErrorCode.RATE_LIMITED,
            f"Rate limited while fetching {url}",
            retry_after=result.retry_after,
        )
    if status in (401, 403):
        return ScrapeError(url, ScrapeErrorCode.ACCESS_DENIED, f"Access denied (HTTP {status}): {url}")
    if status in (404, 410):
        return ScrapeError(url, ScrapeErrorCode.NOT_FOUND, f"Page not found (HTTP {status}): {url}")
    if status >= 500:
        return ScrapeError(
            url, ScrapeErrorCode.SCRAPE_FAILED, f"Server error (HTTP {status}): {url}", retryable=True
        )
    if 400 <= status < 500:
        return ScrapeError(url, ScrapeErrorCode.SCRAPE_FAILED, f"HTTP {status}: {url}")

    message = result.error or "Unknown fetch failure"
    msg_lower = message.lower()
    if any(kw in msg_lower for kw in _TIMEOUT_KEYWORDS):
        return ScrapeError(url, ScrapeErrorCode.TIMEOUT, f"Timed out fetching {url}: {message}")
    if any(kw in msg_lower for kw in _NETWORK_KEYWORDS):
        return ScrapeError(url, ScrapeErrorCode.NETWORK_ERROR, f"Network error fetching {url}: {message}")
    return ScrapeError(url, ScrapeErrorCode.UNKNOWN_ERROR, message)


class BaseFetcher(ABC):
    """A transport that yields raw pages; subclasses own the connection lifecycle."""

    def __init__(self, config: FetcherConfig, max_retries: int = 2, retry_base_delay: float = 1.0):
        self.config = config
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._extractor = ContentExtractor(config)

    @abstractmethod
    async def __aenter__(self): ...

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb): ...

    @abstractmethod
    async def fetch(self, url: str) -> FetchResult:
        """Perform a single request. Failures are reported in the result, not raised."""

    async def fetch_with_retry(
        self, url: str, max_retries: int = 3, base_delay: float = 1.0
    ) -> FetchResult:
        attempt = 0
        while True:
            result = await self.fetch(url)
            result.attempts = attempt + 1
            if result.success or not result.transient or attempt >= max_retries:
                return result
            delay = backoff_delay(attempt, base_delay, result.retry_after)
            logger.debug("Retrying %s in %.1fs (HTTP %s)", url, delay, result.status_code)
            await asyncio.sleep(delay)
            attempt += 1

    async def scrape(
        self,
        url: str,
        timeout_ms: int | None = None,
        only_main_content: bool | None = None,
        want_links: bool = True,
    ) -> PageContent:
        """Fetch one URL and return its readable content.

        Raises:
            ScrapeError: classified failure (timeout, rate limit, 404, ...).
        """
        validate_url(url)
        timeout = (timeout_ms or self.config.timeout_ms) / 1000
        if only_main_content is None:
            only_main_content = self.config.only_main_content

        try:
            result = await asyncio.wait_for(
                self.fetch_with_retry(url, self.max_retries, self.retry_base_delay),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ScrapeError(
                url, ScrapeErrorCode.TIMEOUT, f"Page fetch exceeded {timeout:.0f}s: {url}"
            ) from None

        if not result.success:
            raise classify_failure(result)

        final_url = result.final_url or url
        if self._is_raw_document(result):
            return PageContent(url=url, final_url=final_url, content=result.html.strip())

        content, title = self._to_markdown(result.html, final_url, only_main_content)
        if len(content) < self.config.min_content_length:
            raise ScrapeError(
                url,
                ScrapeErrorCode.SCRAPE_FAILED,
                f"Page has too little content ({len(content)} chars): {url}",
            )

        links = self.extract_links(result.html, final_url) if want_links else []
        return PageContent(url=url, final_url=final_url, content=content, title=title, links=links)

    def _to_markdown(self, html: str, url: str, only_main_content: bool) -> tuple[str, str | None]:
        title = self._extractor.page_title(html)
        if only_main_content:
            extracted = self._extractor.extract(html, url)
            if extracted and extracted.html:
                return html_to_markdown(extracted.html), extracted.title or title
        return html_to_markdown(html), title

    @staticmethod
    def _is_raw_document(result: FetchResult) -> bool:
        """Machine-readable specs and plain text are passed through untouched."""
        content_type = result.content_type.lower()
        if any(t in content_type for t in _RAW_CONTENT_TYPES):
            return True
        head = result.html.lstrip()[:200].lower()
        return head.startswith("{") or head.startswith("openapi:") or head.startswith("swagger:")

    @staticmethod
    def extract_links(html: str, base_url: str) -> list[str]:
        """Collect absolute, fragment-free page links in document order."""
        found: dict[str, None] = {}
        for anchor in BeautifulSoup(html, "lxml").select("a[href]"):
            target = anchor.get("href")
            if not isinstance(target, str) or target.startswith(_SKIPPED_SCHEMES):
                continue
            absolute = make_absolute(base_url, target)
            if absolute.startswith(("http://", "https://")) and is_doc_url(absolute):
                found.setdefault(absolute)
        return list(found)

