"""Turn ApiDocument endpoints into self-contained action definitions."""

import logging
import re

from pydantic import BaseModel, Field

from api_doc_scraper.actions.pagination import (
    PaginationConfig,
    PaginationLimits,
    detect_pagination_config,
)
from api_doc_scraper.config import GenerationConfig
from api_doc_scraper.models import (
    ApiAuthMethod,
    ApiDocument,
    ApiEndpoint,
    ApiParameter,
    AuthType,
    HttpMethod,
    RateLimit,
    RateLimitsConfig,
)
from api_doc_scraper.schema import (
    CompositeSchema,
    JsonSchema,
    ObjectSchema,
    open_object,
    schema_from_dict,
)
from api_doc_scraper.utils.text import slugify

logger = logging.getLogger(__name__)

STANDARD_HEADERS = frozenset({
    "content-type",
    "accept",
    "authorization",
    "user-agent",
    "host",
    "connection",
    "cache-control",
})

_PARAM_TYPES = {
    "string": "string",
    "number": "number",
    "integer": "integer",
    "boolean": "boolean",
    "array": "array",
    "object": "object",
    "file": "string",
    "date": "string",
    "datetime": "string",
    "uuid": "string",
    "email": "string",
    "url": "string",
    "uri": "string",
}

_COLON_PARAM_RE = re.compile(r":([a-zA-Z_][a-zA-Z0-9_]*)")

MAX_SLUG_LENGTH = 100


class RetryConfig(BaseModel):
    max_retries: int = 3
    retryable_statuses: list[int] = Field(default_factory=lambda: [429, 500, 502, 503, 504])
    backoff_multiplier: float = 2.0


class ActionMetadata(BaseModel):
    original_path: str
    tags: list[str] = Field(default_factory=list)
    deprecated: bool = False
    ai_confidence: float | None = None
    rate_limit: RateLimit | None = None
    source_urls: list[str] = Field(default_factory=list)
    wishlist_score: float = Field(default=0.0, ge=0.0, le=1.0)


class ActionDefinition(BaseModel):
    """A callable description of one API operation."""

    name: str
    slug: str
    description: str | None = None
    method: HttpMethod
    endpoint_template: str
    input_schema: JsonSchema
    output_schema: JsonSchema
    pagination: PaginationConfig | None = None
    retry: RetryConfig | None = None
    cacheable: bool = False
    cache_ttl_seconds: int | None = None
    metadata: ActionMetadata

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GenerationOptions(BaseModel):
    wishlist: list[str] = Field(default_factory=list)
    source_urls: list[str] = Field(default_factory=list)
    ai_confidence: float | None = None
    default_cache_ttl: int = 300
    include_deprecated: bool = False
    retry_confidence_threshold: float = 0.7
    pagination_limits: PaginationLimits = Field(default_factory=PaginationLimits)

    @classmethod
    def from_config(cls, config: GenerationConfig, **overrides) -> "GenerationOptions":
        values = {
            "default_cache_ttl": config.default_cache_ttl,
            "include_deprecated": config.include_deprecated,
            "retry_confidence_threshold": config.retry_confidence_threshold,
            "pagination_limits": PaginationLimits.from_config(config),
        }
        values.update(overrides)
        return cls(**values)


class GenerationStats(BaseModel):
    total_endpoints: int = 0
    generated_actions: int = 0
    skipped_deprecated: int = 0
    skipped_duplicates: int = 0


class ActionGenerationResult(BaseModel):
    actions: list[ActionDefinition] = Field(default_factory=list)
    matched_actions: list[str] = Field(default_factory=list)
    unmatched_actions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    stats: GenerationStats = Field(default_factory=GenerationStats)


class AuthSummary(BaseModel):
    primary_auth: ApiAuthMethod | None = None
    supported_auth_types: list[AuthType] = Field(default_factory=list)


def generate_actions(
    document: ApiDocument,
    options: GenerationOptions | None = None,
) -> ActionGenerationResult:
    """Build one action per live endpoint, wishlist matches first."""
    options = options or GenerationOptions()
    wishlist = [term.lower().strip() for term in options.wishlist if term.strip()]
    confidence = options.ai_confidence
    if confidence is None:
        confidence = document.metadata.ai_confidence

    result = ActionGenerationResult()
    result.stats.total_endpoints = len(document.endpoints)
    seen_slugs: set[str] = set()

    for endpoint in document.endpoints:
        if endpoint.deprecated and not options.include_deprecated:
            result.stats.skipped_deprecated += 1
            continue

        slug = generate_slug(endpoint.slug or endpoint.name) or generate_slug(
            f"{endpoint.method.value}-{endpoint.path}"
        )
        if slug in seen_slugs:
            renamed = make_unique_slug(slug, endpoint.method, seen_slugs)
            result.warnings.append(f'Duplicate slug "{slug}" renamed to "{renamed}"')
            result.stats.skipped_duplicates += 1
            slug = renamed
        seen_slugs.add(slug)

        result.actions.append(_build_action(
            endpoint,
            slug=slug,
            base_url=document.base_url,
            rate_limits=document.rate_limits,
            confidence=confidence,
            wishlist_score=wishlist_score(endpoint, wishlist),
            options=options,
        ))

    result.actions.sort(key=lambda a: (-a.metadata.wishlist_score, a.name.lower(), a.name))
    result.matched_actions = [a.slug for a in result.actions if a.metadata.wishlist_score > 0]
    result.unmatched_actions = [a.slug for a in result.actions if a.metadata.wishlist_score == 0]
    result.stats.generated_actions = len(result.actions)
    logger.debug(summarize_actions(result))
    return result


def _build_action(
    endpoint: ApiEndpoint,
    slug: str,
    base_url: str,
    rate_limits: RateLimitsConfig | None,
    confidence: float | None,
    wishlist_score: float,
    options: GenerationOptions,
) -> ActionDefinition:
    cacheable = endpoint.method == HttpMethod.GET
    rate_limit = None
    if rate_limits is not None:
        rate_limit = rate_limits.per_endpoint.get(endpoint.path) or rate_limits.default
    retry = None
    if confidence is not None and confidence >= options.retry_confidence_threshold:
        retry = RetryConfig()

    return ActionDefinition(
        name=endpoint.name,
        slug=slug,
        description=endpoint.description,
        method=endpoint.method,
        endpoint_template=build_endpoint_template(base_url, endpoint.path),
        input_schema=build_input_schema(endpoint),
        output_schema=build_output_schema(endpoint),
        pagination=detect_pagination_config(endpoint, options.pagination_limits),
        retry=retry,
        cacheable=cacheable,
        cache_ttl_seconds=options.default_cache_ttl if cacheable else None,
        metadata=ActionMetadata(
            original_path=endpoint.path,
            tags=endpoint.tags,
            deprecated=endpoint.deprecated,
            ai_confidence=confidence,
            rate_limit=rate_limit,
            source_urls=options.source_urls,
            wishlist_score=wishlist_score,
        ),
    )


def build_input_schema(endpoint: ApiEndpoint) -> ObjectSchema:
    """Merge parameters and body fields into one flat object schema.

    Body properties share the namespace with parameters and are not
    prefixed. Standard HTTP headers are left to the caller's client.
    """
    properties: dict[str, JsonSchema] = {}
    required: list[str] = []

    headers = [p for p in endpoint.header_parameters if p.name.lower() not in STANDARD_HEADERS]
    for param in endpoint.path_parameters + endpoint.query_parameters + headers:
        properties[param.name] = parameter_schema(param)
        if param.required and param.name not in required:
            required.append(param.name)

    body = endpoint.request_body
    if body is not None and body.schema_:
        body_schema = schema_from_dict(body.schema_)
        if isinstance(body_schema, ObjectSchema) and body_schema.properties:
            properties.update(body_schema.properties)
            for name in body_schema.required or []:
                if name not in required:
                    required.append(name)
        else:
            properties["body"] = body_schema
            if body.required:
                required.append("body")

    return ObjectSchema(
        properties=properties,
        required=required or None,
        additional_properties=False,
    )


def parameter_schema(param: ApiParameter) -> JsonSchema:
    raw: dict = {"type": _PARAM_TYPES.get(param.type.lower(), "string")}
    if param.description:
        raw["description"] = param.description
    if param.default is not None:
        raw["default"] = param.default
    if param.enum:
        raw["enum"] = param.enum
    return schema_from_dict(raw)


def build_output_schema(endpoint: ApiEndpoint) -> JsonSchema:
    response = endpoint.success_response()
    description = (response.description if response else None) or "Response data"
    if response is None or not response.schema_:
        return open_object(description)

    schema = schema_from_dict(response.schema_)
    if isinstance(schema, CompositeSchema) and not (
        schema.one_of or schema.any_of or schema.all_of or schema.ref
    ):
        return open_object(description)
    return schema


def generate_slug(name: str) -> str:
    return slugify(name)[:MAX_SLUG_LENGTH].strip("-")


def make_unique_slug(slug: str, method: HttpMethod, existing: set[str]) -> str:
    with_method = f"{slug}-{method.value.lower()}"
    if with_method not in existing:
        return with_method
    counter = 2
    while f"{slug}-{counter}" in existing:
        counter += 1
    return f"{slug}-{counter}"


def build_endpoint_template(base_url: str, path: str) -> str:
    """Join base URL and path, rewriting ``:param`` segments to ``{param}``."""
    base = base_url.rstrip("/")
    if not path.startswith("/"):
        path = "/" + path
    return base + _COLON_PARAM_RE.sub(r"{\1}", path)


def wishlist_score(endpoint: ApiEndpoint, wishlist: list[str]) -> float:
    """Fraction of wishlist terms found in the endpoint's searchable text."""
    if not wishlist:
        return 0.0
    text = " ".join([
        endpoint.name,
        endpoint.slug,
        endpoint.path,
        endpoint.description or "",
        *endpoint.tags,
    ]).lower()
    matches = sum(1 for term in wishlist if term in text)
    return matches / len(wishlist)


def extract_auth_config(auth_methods: list[ApiAuthMethod]) -> AuthSummary:
    if not auth_methods:
        return AuthSummary()
    return AuthSummary(
        primary_auth=auth_methods[0],
        supported_auth_types=[m.type for m in auth_methods],
    )


def summarize_actions(result: ActionGenerationResult) -> str:
    stats = result.stats
    lines = [f"Generated {stats.generated_actions} actions from {stats.total_endpoints} endpoints"]
    if stats.skipped_deprecated:
        lines.append(f"  - Skipped {stats.skipped_deprecated} deprecated endpoints")
    if stats.skipped_duplicates:
        lines.append(f"  - Renamed {stats.skipped_duplicates} duplicate slugs")
    if result.matched_actions:
        lines.append(f"  - {len(result.matched_actions)} actions matched wishlist")
    if result.warnings:
        lines.append(f"  - {len(result.warnings)} warnings")
    return "\n".join(lines)
