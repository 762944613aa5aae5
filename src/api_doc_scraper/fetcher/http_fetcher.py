"""httpx transport for static documentation pages and spec files."""

import httpx

from api_doc_scraper.config import FetcherConfig
from api_doc_scraper.fetcher.base import BaseFetcher, FetchResult, parse_retry_after


class HttpFetcher(BaseFetcher):
    """Fetches pages with a shared ``httpx.AsyncClient``; no JavaScript is run.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: FetcherConfig,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config, max_retries, retry_base_delay)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HttpFetcher":
        self._client = httpx.AsyncClient(
            transport=self._transport,
            headers={"User-Agent": self.config.user_agent},
            timeout=httpx.Timeout(self.config.timeout_ms / 1000),
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def fetch(self, url: str) -> FetchResult:
        if self._client is None:
            raise RuntimeError("HttpFetcher must be used as an async context manager")

        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            kind = "Request timed out" if isinstance(e, httpx.TimeoutException) else "Network error"
            return FetchResult(url=url, final_url=url, html="", status_code=0, error=f"{kind}: {e}")

        status = response.status_code
        return FetchResult(
            url=url,
            final_url=str(response.url),
            html=response.text,
            status_code=status,
            content_type=response.headers.get("content-type", ""),
            retry_after=parse_retry_after(response.headers.get("retry-after")) if status == 429 else None,
        )
