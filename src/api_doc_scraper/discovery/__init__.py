"""URL discovery, classification and site mapping."""

from api_doc_scraper.discovery.base import BaseDiscoverer, DiscoveredURL
from api_doc_scraper.discovery.classifier import (
    PreFilterResult,
    UrlCategory,
    UrlClassification,
    apply_char_budget,
    classify,
    pre_filter,
)
from api_doc_scraper.discovery.crawler import CrawlerDiscoverer, filter_documentation_links
from api_doc_scraper.discovery.site_mapper import SiteMap, SiteMapper
from api_doc_scraper.discovery.sitemap import SitemapDiscoverer

__all__ = [
    "BaseDiscoverer",
    "CrawlerDiscoverer",
    "DiscoveredURL",
    "PreFilterResult",
    "SiteMap",
    "SiteMapper",
    "SitemapDiscoverer",
    "UrlCategory",
    "UrlClassification",
    "apply_char_budget",
    "classify",
    "filter_documentation_links",
    "pre_filter",
]
