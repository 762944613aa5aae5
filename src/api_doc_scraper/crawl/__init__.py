"""Page triage and crawl orchestration."""

from api_doc_scraper.crawl.orchestrator import (
    CrawledPage,
    CrawlOrchestrator,
    CrawlProgress,
    CrawlResult,
    aggregate_pages,
)
from api_doc_scraper.crawl.prioritizer import (
    PagePrioritizer,
    PrioritizedUrl,
    TriageResult,
    match_wishlist,
    select_urls_to_scrape,
)

__all__ = [
    "CrawlOrchestrator",
    "CrawlProgress",
    "CrawlResult",
    "CrawledPage",
    "PagePrioritizer",
    "PrioritizedUrl",
    "TriageResult",
    "aggregate_pages",
    "match_wishlist",
    "select_urls_to_scrape",
]
