"""Action definition generation."""

from api_doc_scraper.actions.generator import (
    ActionDefinition,
    ActionGenerationResult,
    ActionMetadata,
    GenerationOptions,
    RetryConfig,
    build_endpoint_template,
    extract_auth_config,
    generate_actions,
    generate_slug,
    summarize_actions,
)
from api_doc_scraper.actions.pagination import (
    PaginationConfig,
    PaginationLimits,
    PaginationStrategy,
    detect_pagination_config,
)

__all__ = [
    "ActionDefinition",
    "ActionGenerationResult",
    "ActionMetadata",
    "GenerationOptions",
    "PaginationConfig",
    "PaginationLimits",
    "PaginationStrategy",
    "RetryConfig",
    "build_endpoint_template",
    "detect_pagination_config",
    "extract_auth_config",
    "generate_actions",
    "generate_slug",
    "summarize_actions",
]
