"""Utility modules."""

from api_doc_scraper.utils.cancellation import CancellationToken
from api_doc_scraper.utils.rate_limiter import RateLimiter
from api_doc_scraper.utils.url_utils import is_same_domain, normalize_url, validate_url

__all__ = ["CancellationToken", "RateLimiter", "normalize_url", "is_same_domain", "validate_url"]
