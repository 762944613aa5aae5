"""Page fetching with failure classification."""

from api_doc_scraper.fetcher.base import BaseFetcher, FetchResult, PageContent, classify_failure
from api_doc_scraper.fetcher.http_fetcher import HttpFetcher

__all__ = [
    "BaseFetcher",
    "FetchResult",
    "PageContent",
    "HttpFetcher",
    "classify_failure",
]
