"""Configuration management with Pydantic models."""

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class CrawlMode(str, Enum):
    """How documentation pages are acquired."""

    SINGLE = "single"
    INTELLIGENT = "intelligent"
    BFS = "bfs"


class FetcherConfig(BaseModel):
    """Configuration for page fetching."""

    timeout_ms: int = Field(default=60000, ge=1000, le=300000)
    user_agent: str = "ApiDocScraper/0.1 (API Documentation Scraper)"
    only_main_content: bool = True
    min_content_length: int = Field(default=100, ge=0)
    content_selectors: list[str] = Field(
        default_factory=lambda: [
            "article",
            "main",
            '[role="main"]',
            ".content",
            ".documentation",
            ".docs-content",
            ".markdown-body",
        ]
    )
    remove_selectors: list[str] = Field(
        default_factory=lambda: [
            "nav",
            "header",
            "footer",
            ".navigation",
            ".navbar",
            ".sidebar",
            ".toc",
            ".table-of-contents",
            ".breadcrumb",
            ".breadcrumbs",
            ".edit-page",
            ".comments",
            "script",
            "style",
            "noscript",
            '[role="navigation"]',
            '[role="banner"]',
        ]
    )


class RateLimitConfig(BaseModel):
    """Configuration for request pacing and retries."""

    delay_seconds: float = Field(default=0.5, ge=0.0, le=60.0)
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.1, le=30.0)


class MapConfig(BaseModel):
    """Configuration for site mapping."""

    limit: int = Field(default=5000, ge=1)
    timeout_ms: int = Field(default=60000, ge=1000)


class CrawlConfig(BaseModel):
    """Configuration for the crawl stage."""

    mode: CrawlMode = CrawlMode.INTELLIGENT
    max_pages: int = Field(default=30, ge=1, le=500)
    max_depth: int = Field(default=3, ge=1, le=10)
    continue_on_error: bool = True
    total_timeout_ms: int = Field(default=600000, ge=1000)
    bfs_request_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)


class TriageConfig(BaseModel):
    """Configuration for LLM page triage."""

    max_input_chars: int = Field(default=200_000, ge=1000)
    max_attempts: int = Field(default=3, ge=1, le=10)
    temperatures: list[float] = Field(default_factory=lambda: [0.1, 0.1, 0.0])
    # Fewer LLM selections than this (bounded by pool size) triggers pattern fill
    min_selected_pages: int = Field(default=3, ge=0)
    max_auth_pages: int = Field(default=3, ge=0)
    large_api_threshold: int = Field(default=15, ge=1)


class LlmConfig(BaseModel):
    """Configuration for the language model collaborator."""

    model: str = "claude-sonnet-4-20250514"
    max_output_tokens: int = Field(default=8192, ge=256)
    timeout_seconds: float = Field(default=120.0, ge=1.0)


class ExtractionConfig(BaseModel):
    """Configuration for AI extraction."""

    chunk_threshold: int = Field(default=100_000, ge=1000)
    chunk_size: int = Field(default=50_000, ge=1000)
    chunk_overlap: int = Field(default=2_000, ge=0)
    # Auth and rate-limit prompts combine several chunks; cap what they send
    stage_max_chars: int = Field(default=100_000, ge=1000)
    max_attempts: int = Field(default=3, ge=1, le=10)
    temperatures: list[float] = Field(default_factory=lambda: [0.2, 0.1, 0.0])


class GenerationConfig(BaseModel):
    """Configuration for action generation."""

    default_cache_ttl: int = Field(default=300, ge=0)
    include_deprecated: bool = False
    pagination_max_pages: int = Field(default=5, ge=1)
    pagination_max_items: int = Field(default=500, ge=1)
    pagination_max_characters: int = Field(default=100_000, ge=1)
    pagination_max_duration_seconds: int = Field(default=30, ge=1)
    retry_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)


class JobConfig(BaseModel):
    """Configuration for job orchestration."""

    min_endpoints_for_cache: int = Field(default=1, ge=0)
    cache_dir: Path = Path("./.api-doc-cache")
    workers: int = Field(default=2, ge=1, le=32)


class AppConfig(BaseModel):
    """Main application configuration."""

    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    map: MapConfig = Field(default_factory=MapConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    triage: TriageConfig = Field(default_factory=TriageConfig)
    llm: LlmConfig = Field(default_factory=LlmConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    job: JobConfig = Field(default_factory=JobConfig)
    verbose: bool = False

    @classmethod
    def from_toml(cls, path: Path) -> "AppConfig":
        """Load config from a TOML file."""
        try:
            import tomllib  # type: ignore[import-not-found]
        except ModuleNotFoundError:
            import tomli as tomllib  # type: ignore[import-not-found]
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.model_validate(data)

    def to_toml(self, include_defaults: bool = False) -> str:
        """Render the config as TOML, by default only the values that differ from defaults."""
        data = self.model_dump(mode="json", exclude_defaults=not include_defaults)
        scalars = {k: v for k, v in data.items() if not isinstance(v, dict)}
        out = [f"{k} = {_literal(v)}" for k, v in scalars.items()]
        for section, values in data.items():
            if isinstance(values, dict):
                out.append(f"\n[{section}]")
                out.extend(f"{k} = {_literal(v)}" for k, v in values.items())
        return "\n".join(out).lstrip("\n") + "\n"


def _literal(value: object) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(_literal(v) for v in value) + "]"
    return json.dumps(str(value))
