"""Pattern-based URL classification and pre-filtering.

The scores here double as the triage fallback when the language model
is unavailable, so they have to rank pages sensibly on their own.
"""

import json
import re
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from api_doc_scraper.utils.url_utils import is_under_root, normalize_url


class UrlCategory(str, Enum):
    API_ENDPOINT = "api_endpoint"
    API_REFERENCE = "api_reference"
    AUTHENTICATION = "authentication"
    GETTING_STARTED = "getting_started"
    RATE_LIMITS = "rate_limits"
    OTHER = "other"


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


EXCLUDE_PATTERNS = _compile(
    r"/blog(/|$)",
    r"/news(/|$)",
    r"/pricing/?$",
    r"/about/?$",
    r"/contact/?$",
    r"/careers?/?$",
    r"/jobs?/?$",
    r"/login/?$",
    r"/signup/?$",
    r"/register/?$",
    r"/changelog/?$",
    r"/release-?notes?/?$",
    r"/status/?$",
    r"/terms/?$",
    r"/privacy/?$",
    r"/legal/?$",
    r"/(community|forum|forums)(/|$)",
    r"\.(pdf|zip|png|jpe?g|gif|svg|ico|css|js)$",
)

AUTH_PATTERNS = _compile(
    r"/auth(entication)?/?$",
    r"/oauth2?/?$",
    r"/security/?$",
    r"/api-?keys?/?$",
    r"/tokens?/?$",
    r"/credentials?/?$",
    r"/access/?$",
)

ENDPOINT_PATTERNS = _compile(
    r"/api/v\d+/[a-z-]+/?$",
    r"/methods/[a-z.-]+/?$",
    r"/endpoints?/[a-z-]+/?$",
    r"/reference/[a-z-]+/?$",
    r"/rest/[a-z-]+/?$",
    r"/resources?/[a-z-]+/?$",
    r"/operations?/[a-z-]+/?$",
)

REFERENCE_PATTERNS = _compile(
    r"/api-reference/?$",
    r"/api-docs?/?$",
    r"/api/reference/?$",
    r"/reference/?$",
    r"/api/?$",
    r"/rest-api/?$",
    r"/graphql/?$",
)

RATE_LIMIT_PATTERNS = _compile(
    r"/rate-?limits?/?$",
    r"/limits?/?$",
    r"/throttling/?$",
    r"/quotas?/?$",
    r"/usage-?limits?/?$",
)

GETTING_STARTED_PATTERNS = _compile(
    r"/getting-?started/?$",
    r"/quick-?start/?$",
    r"/setup/?$",
    r"/installation?/?$",
    r"/overview/?$",
    r"/introduction/?$",
    r"/basics?/?$",
)

GENERIC_DOC_PATTERN = re.compile(r"/(api|docs?|reference|methods|endpoints)/", re.IGNORECASE)

# Ordered: the first family that matches wins
_FAMILIES: tuple[tuple[tuple[re.Pattern[str], ...], UrlCategory, int], ...] = (
    (AUTH_PATTERNS, UrlCategory.AUTHENTICATION, 95),
    (ENDPOINT_PATTERNS, UrlCategory.API_ENDPOINT, 90),
    (REFERENCE_PATTERNS, UrlCategory.API_REFERENCE, 85),
    (RATE_LIMIT_PATTERNS, UrlCategory.RATE_LIMITS, 80),
    (GETTING_STARTED_PATTERNS, UrlCategory.GETTING_STARTED, 70),
)


class UrlClassification(BaseModel):
    category: UrlCategory
    pattern_score: int = Field(ge=0, le=100)
    exclude: bool = False


class PreFilterResult(BaseModel):
    included: list[str] = Field(default_factory=list)
    excluded: list[str] = Field(default_factory=list)


def classify(url: str) -> UrlClassification:
    """Score a URL by its path into a documentation category."""
    try:
        path = urlparse(url).path or "/"
    except ValueError:
        return UrlClassification(category=UrlCategory.OTHER, pattern_score=0, exclude=True)

    if any(p.search(path) for p in EXCLUDE_PATTERNS):
        return UrlClassification(category=UrlCategory.OTHER, pattern_score=0, exclude=True)

    for patterns, category, score in _FAMILIES:
        if any(p.search(path) for p in patterns):
            return UrlClassification(category=category, pattern_score=score)

    if GENERIC_DOC_PATTERN.search(path):
        return UrlClassification(category=UrlCategory.API_REFERENCE, pattern_score=60)

    return UrlClassification(category=UrlCategory.OTHER, pattern_score=20)


def pre_filter(urls: list[str], root_url: str) -> PreFilterResult:
    """Keep normalized, deduplicated same-host URLs under the root's path.

    Running it again on its own ``included`` list returns the same list.
    """
    result = PreFilterResult()
    seen: set[str] = set()
    for url in urls:
        normalized = normalize_url(url)
        if normalized in seen:
            continue
        seen.add(normalized)
        if not is_under_root(normalized, root_url) or classify(normalized).exclude:
            result.excluded.append(url)
            continue
        result.included.append(normalized)
    return result


def apply_char_budget(urls: list[str], max_chars: int) -> tuple[list[str], list[str]]:
    """Cap the serialized URL list at ``max_chars``.

    When over budget, URLs are kept in pattern-score order (ties keep
    discovery order) until the budget is spent; the rest are returned
    as skipped.
    """
    if len(json.dumps(urls)) <= max_chars:
        return list(urls), []

    ranked = sorted(urls, key=lambda u: classify(u).pattern_score, reverse=True)
    kept: list[str] = []
    skipped: list[str] = []
    used = 2  # brackets
    for url in ranked:
        cost = len(json.dumps(url)) + 2
        if used + cost <= max_chars:
            kept.append(url)
            used += cost
        else:
            skipped.append(url)
    return kept, skipped
