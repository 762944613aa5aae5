"""Structural and AI-assisted parsing into ApiDocument."""

from api_doc_scraper.parsers.openapi import (
    PLACEHOLDER_BASE_URL,
    OpenApiParseResult,
    is_structured_spec,
    parse_spec,
)
from api_doc_scraper.parsers.ai_extractor import (
    AiExtractor,
    ExtractionResult,
    deduplicate_endpoints,
    split_into_chunks,
)

__all__ = [
    "PLACEHOLDER_BASE_URL",
    "AiExtractor",
    "ExtractionResult",
    "OpenApiParseResult",
    "deduplicate_endpoints",
    "is_structured_spec",
    "parse_spec",
    "split_into_chunks",
]
