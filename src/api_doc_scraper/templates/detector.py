"""Recognize template API families in scraped documentation.

Three signal classes are scored independently: source URLs, corpus
content (patterns and keywords), and the paths of extracted endpoints.
A family counts as detected at confidence 0.3 or more; the best one wins.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from api_doc_scraper.models import ApiDocument
from api_doc_scraper.templates.base import IntegrationTemplate
from api_doc_scraper.templates.registry import TemplateRegistry

logger = logging.getLogger(__name__)

DETECTION_THRESHOLD = 0.3
URL_WEIGHT = 0.3
CONTENT_WEIGHT = 0.15
ENDPOINT_WEIGHT = 0.2
KEYWORD_WEIGHT = 0.05

_SUPABASE_URL_RE = re.compile(r"https://[a-z0-9-]+\.supabase\.co", re.IGNORECASE)
_POSTGREST_URL_RE = re.compile(r"https?://[^\s\"'<>]+/rest/v1", re.IGNORECASE)
_VERSIONED_API_RE = re.compile(r"https?://[^\s\"'<>]+/api/v\d+", re.IGNORECASE)


@dataclass
class TemplatePattern:
    template_id: str
    url_patterns: list[re.Pattern]
    content_patterns: list[re.Pattern]
    endpoint_patterns: list[re.Pattern]
    keywords: list[str] = field(default_factory=list)
    base_url_extractor: Callable[[str, str], str | None] | None = None


class TemplateDetectionResult(BaseModel):
    detected: bool = False
    template: IntegrationTemplate | None = None
    confidence: float = 0.0
    signals: list[str] = Field(default_factory=list)
    suggested_base_url: str | None = None


def _postgrest_base_url(content: str, source_url: str) -> str | None:
    for text in (content, source_url):
        match = _SUPABASE_URL_RE.search(text)
        if match:
            return match.group(0)
    match = _POSTGREST_URL_RE.search(content)
    if match:
        return match.group(0)[: -len("/rest/v1")]
    return None


def _rest_base_url(content: str, source_url: str) -> str | None:
    match = _VERSIONED_API_RE.search(content)
    if match:
        return match.group(0)
    parsed = urlparse(source_url)
    if parsed.scheme and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}"
    return None


def _compile(*patterns: str, flags: int = re.IGNORECASE) -> list[re.Pattern]:
    return [re.compile(p, flags) for p in patterns]


TEMPLATE_PATTERNS = [
    TemplatePattern(
        template_id="postgrest",
        url_patterns=_compile(r"supabase\.com", r"supabase\.co", r"postgrest", r"\.supabase\."),
        content_patterns=_compile(
            r"PostgREST",
            r"Supabase\s+(API|REST|Database)",
            r"\.select\(\s*['\"`]\*",
            r"\.from\(\s*['\"`]",
            r"apikey",
            r"anon\s*key",
            r"service[_\s]?role[_\s]?key",
            r"Row Level Security",
        ) + [re.compile(r"RLS")],
        endpoint_patterns=_compile(
            r"/rest/v1/", r"/rpc/", r"\?select=", r"\?order=",
            r"eq\.", r"neq\.", r"gt\.", r"lt\.",
        ),
        keywords=[
            "supabase", "postgrest", "postgres", "row level security",
            "rls", "anon key", "service role", "jwt",
        ],
        base_url_extractor=_postgrest_base_url,
    ),
    TemplatePattern(
        template_id="rest-crud",
        url_patterns=_compile(r"/api/v\d+", r"/rest/"),
        content_patterns=_compile(
            r"RESTful\s+API",
            r"CRUD\s+operations",
            r"GET\s+/[a-z]+\s",
            r"POST\s+/[a-z]+\s",
            r"PUT\s+/[a-z]+/\{?id\}?\s",
            r"DELETE\s+/[a-z]+/\{?id\}?\s",
        ),
        endpoint_patterns=_compile(
            r"^GET\s+/\{?[a-z_]+\}?$",
            r"^POST\s+/\{?[a-z_]+\}?$",
            r"^GET\s+/\{?[a-z_]+\}?/\{?:?id\}?$",
        ),
        keywords=["crud", "restful", "resource", "collection"],
        base_url_extractor=_rest_base_url,
    ),
]


def detect_template(
    document: ApiDocument | None,
    content: str,
    source_urls: list[str],
) -> TemplateDetectionResult:
    """Score every known family and return the best match above the floor."""
    best = TemplateDetectionResult()
    content_lower = content.lower()
    # Endpoints are matched as "METHOD /path" so method-aware patterns work
    endpoint_lines = [
        f"{e.method.value} {e.path}" for e in (document.endpoints if document else [])
    ]

    for pattern in TEMPLATE_PATTERNS:
        template = TemplateRegistry.get(pattern.template_id)
        if template is None:
            continue

        signals: list[str] = []
        score = 0.0

        for url in source_urls:
            if any(p.search(url) for p in pattern.url_patterns):
                signals.append(f"URL matches {pattern.template_id} pattern: {url}")
                score += URL_WEIGHT

        for content_pattern in pattern.content_patterns:
            if content_pattern.search(content):
                signals.append(f"Content matches pattern: {content_pattern.pattern}")
                score += CONTENT_WEIGHT

        for line in endpoint_lines:
            if any(p.search(line) for p in pattern.endpoint_patterns):
                signals.append(f"Endpoint path matches: {line}")
                score += ENDPOINT_WEIGHT

        for keyword in pattern.keywords:
            if keyword in content_lower:
                signals.append(f"Keyword found: {keyword}")
                score += KEYWORD_WEIGHT

        confidence = round(min(score, 1.0), 3)
        logger.debug("Template %s scored %.2f", pattern.template_id, confidence)
        if confidence > best.confidence and confidence >= DETECTION_THRESHOLD:
            suggested = None
            if pattern.base_url_extractor is not None:
                suggested = pattern.base_url_extractor(content, source_urls[0] if source_urls else "")
            best = TemplateDetectionResult(
                detected=True,
                template=template,
                confidence=confidence,
                signals=signals,
                suggested_base_url=suggested,
            )

    return best


def quick_template_check(url: str) -> str | None:
    """Guess a template id from the URL alone, before any content exists."""
    url_lower = url.lower()
    if "supabase" in url_lower or "postgrest" in url_lower:
        return "postgrest"
    if "airtable" in url_lower or "notion.so" in url_lower or "notion.com" in url_lower:
        return "rest-crud"
    return None
